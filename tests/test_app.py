from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from apps import bot
from shared.reminders import ReminderRun
from store.outbound_task_store import OutboundTaskStore


@pytest.fixture
def client(fake_db, monkeypatch):
    monkeypatch.setattr(bot, "OPS_TOKEN", "ops-secret")
    monkeypatch.setattr(bot, "TELEGRAM_WEBHOOK_SECRET", "")

    reminders = MagicMock()
    reminders.run = AsyncMock(return_value=ReminderRun(day="2025-03-11", matched=2, sent=1))
    tg_app = MagicMock()
    tg_app.bot = None
    tg_app.process_update = AsyncMock()

    bot.app.state.reminders = reminders
    bot.app.state.task_store = OutboundTaskStore(fake_db)
    bot.app.state.telegram_app = tg_app
    # no context manager: the lifespan (Telegram, Firestore, loops) stays off
    return TestClient(bot.app)


def test_health(client):
    assert client.get("/").json() == {"status": "ok"}
    assert client.head("/").status_code == 200


def test_ops_reminders(client):
    resp = client.post("/ops/reminders", params={"day": "tomorrow"}, headers={"X-Ops-Token": "ops-secret"})

    assert resp.status_code == 200
    assert resp.json() == {"day": "2025-03-11", "matched": 2, "sent": 1}
    bot.app.state.reminders.run.assert_awaited_once_with(1)


def test_ops_reminders_rejects_bad_token(client):
    resp = client.post("/ops/reminders", headers={"X-Ops-Token": "nope"})

    assert resp.status_code == 401
    bot.app.state.reminders.run.assert_not_awaited()


def test_ops_reminders_rejects_unknown_day(client):
    resp = client.post("/ops/reminders", params={"day": "yesterday"}, headers={"X-Ops-Token": "ops-secret"})

    assert resp.status_code == 400


def test_ops_disabled_without_token(client, monkeypatch):
    monkeypatch.setattr(bot, "OPS_TOKEN", "")

    resp = client.post("/ops/cleanup", headers={"X-Ops-Token": ""})

    assert resp.status_code == 403


def test_ops_cleanup(client):
    store = bot.app.state.task_store
    store.collection.document("old").set({"status": "FAILED", "createdAt": "2020-01-01T00:00:00+00:00"})

    resp = client.post("/ops/cleanup", headers={"X-Ops-Token": "ops-secret"})

    assert resp.json() == {"removed": 1}


def test_webhook_feeds_application(client):
    resp = client.post("/telegram/webhook", json={"update_id": 7})

    assert resp.status_code == 200
    update = bot.app.state.telegram_app.process_update.await_args.args[0]
    assert update.update_id == 7


def test_webhook_secret_checked(client, monkeypatch):
    monkeypatch.setattr(bot, "TELEGRAM_WEBHOOK_SECRET", "hook-secret")

    denied = client.post("/telegram/webhook", json={"update_id": 8})
    allowed = client.post(
        "/telegram/webhook", json={"update_id": 8}, headers={"X-Telegram-Bot-Api-Secret-Token": "hook-secret"}
    )

    assert denied.status_code == 403
    assert allowed.status_code == 200
