import pytest
from telegram.error import BadRequest

from models.patient import Patient
from shared.reminders import ReminderSweep, reminder_text
from store.patient_store import PatientStore


@pytest.fixture
def patients(fake_db):
    col = fake_db.collection("patients")
    col.document("due").set({
        "fullName": "Aziza Karimova",
        "telegramChatId": "100",
        "botLanguage": "en",
        "injections": [
            {"date": "2025-03-11T14:30", "status": "Scheduled"},
            {"date": "2025-03-11T16:00", "status": "Scheduled"},
        ],
    })
    col.document("completed").set({
        "fullName": "Bobur Aliev",
        "telegramChatId": "200",
        "injections": [{"date": "2025-03-11T09:00", "status": "Completed"}],
    })
    col.document("unlinked").set({
        "fullName": "No Chat",
        "injections": [{"date": "2025-03-11", "status": "Scheduled"}],
    })
    col.document("today").set({
        "fullName": "Today Patient",
        "telegramChatId": "300",
        "botLanguage": "ru",
        "injections": [{"date": "2025-03-10", "status": "Scheduled"}],
    })
    return PatientStore(fake_db)


@pytest.fixture
def sweep(gateway, patients, monkeypatch):
    monkeypatch.setattr("shared.reminders.SEND_PAUSE_SECONDS", 0)
    return ReminderSweep(gateway, patients, "uz")


def test_find_due_tomorrow(sweep):
    due = sweep.find_due("2025-03-11")

    assert [(p.patient_id, inj.date) for p, inj in due] == [("due", "2025-03-11T14:30")]


def test_reminder_text_localized():
    patient = Patient.from_snapshot("x", {
        "fullName": "Aziza",
        "botLanguage": "en",
        "injections": [{"date": "2025-03-11T14:30", "status": "Scheduled"}],
    })

    text = reminder_text(patient, patient.injections[0])

    assert text.startswith("Reminder! 🎗\n\n")
    assert "*Dear Aziza*" in text
    assert "11.03.2025" in text
    assert "14:30" in text


def test_reminder_text_defaults_to_nine():
    patient = Patient.from_snapshot("x", {"name": "Bobur", "injections": [{"date": "2025-03-11", "status": "Scheduled"}]})

    text = reminder_text(patient, patient.injections[0], "uz")

    assert text.startswith("Eslatma!")
    assert "09:00" in text


@pytest.mark.asyncio
async def test_tomorrow_sweep_sends_to_matching_patients(sweep, gateway, frozen_now):
    run = await sweep.run(1)

    assert run.day == "2025-03-11"
    assert (run.matched, run.sent) == (1, 1)
    gateway.send_text.assert_awaited_once()
    chat_id, text = gateway.send_text.await_args.args[:2]
    assert chat_id == "100"
    assert "14:30" in text


@pytest.mark.asyncio
async def test_today_sweep(sweep, gateway, frozen_now):
    run = await sweep.run(0)

    assert run.day == "2025-03-10"
    assert gateway.send_text.await_args.args[0] == "300"
    assert gateway.send_text.await_args.args[1].startswith("Напоминание!")


@pytest.mark.asyncio
async def test_failed_send_is_counted_not_raised(sweep, gateway, frozen_now):
    gateway.send_text.side_effect = BadRequest("Chat not found")

    run = await sweep.run(1)

    assert (run.matched, run.sent) == (1, 0)
    assert gateway.send_text.await_count == 2
