import asyncio

import pytest
from telegram.error import BadRequest

from context.message.raw_message import InboundKind, InboundMessage
from context.primitives.media import MediaInfo
from context.primitives.replies_info import ReplyContextInfo
from shared.inbound_sync import InboundSync, SyncOutcome
from shared.media_rehost import MediaRehoster
from store.patient_message_store import PatientMessageStore
from store.patient_store import PatientStore


@pytest.fixture
def patients(fake_db):
    fake_db.collection("patients").document("p1").set({
        "fullName": "Aziza Karimova",
        "phone": "+998901234567",
        "telegramChatId": "555",
        "botLanguage": "en",
        "unreadCount": 2,
    })
    return PatientStore(fake_db)


@pytest.fixture
def messages(fake_db):
    return PatientMessageStore(fake_db)


@pytest.fixture
def sync(gateway, patients, messages, bucket):
    return InboundSync(gateway, patients, messages, MediaRehoster(gateway, bucket), notice_ttl=0)


def transcript(messages, patient_id="p1"):
    return {doc.id: doc.to_dict() for doc in messages._messages(patient_id).stream()}


def text_event(message_id, text, chat_id="555"):
    return InboundMessage(kind=InboundKind.NEW, chat_id=chat_id, message_id=message_id, text=text)


@pytest.mark.asyncio
async def test_new_text_is_mirrored(sync, messages, fake_db, frozen_now):
    outcome = await sync.handle(text_event(10, "Hello doctor"))

    assert outcome == SyncOutcome.SAVED
    (saved,) = transcript(messages).values()
    assert saved["sender"] == "user"
    assert saved["text"] == "Hello doctor"
    assert saved["telegramMessageId"] == 10
    assert saved["createdAt"] == frozen_now.isoformat()
    assert saved["time"] == "10:00"
    assert saved["seen"] is False

    patient = fake_db.collection("patients").document("p1").get().to_dict()
    assert patient["lastMessage"] == "Hello doctor"
    assert patient["lastMessageTime"] == "10:00"
    assert patient["unreadCount"] == 3
    assert patient["userIsTyping"] is False


@pytest.mark.asyncio
async def test_duplicate_delivery_creates_one_message(sync, messages, fake_db, caplog):
    caplog.set_level("INFO")

    first = await sync.handle(text_event(10, "Hello"))
    second = await sync.handle(text_event(10, "Hello"))

    assert first == SyncOutcome.SAVED
    assert second == SyncOutcome.DUPLICATE
    assert len(transcript(messages)) == 1
    assert fake_db.collection("patients").document("p1").get().to_dict()["unreadCount"] == 3
    assert "Duplicate message 555:10" in caplog.text


@pytest.mark.asyncio
async def test_unregistered_sender_is_dropped(sync, messages, gateway, caplog):
    caplog.set_level("INFO")

    outcome = await sync.handle(text_event(10, "who am I", chat_id="999"))

    assert outcome == SyncOutcome.UNREGISTERED
    assert transcript(messages) == {}
    gateway.send_text.assert_not_awaited()
    assert "drop unregistered" in caplog.text
    assert not [r for r in caplog.records if r.levelname == "ERROR"]


@pytest.mark.asyncio
async def test_numeric_chat_id_still_resolves(sync, messages, fake_db):
    fake_db.collection("patients").document("p2").set({"fullName": "Old Record", "telegramChatId": 777})

    outcome = await sync.handle(text_event(1, "hi", chat_id="777"))

    assert outcome == SyncOutcome.SAVED
    assert len(transcript(messages, "p2")) == 1


@pytest.mark.asyncio
async def test_doctor_messages_marked_seen(sync, messages):
    box = messages._messages("p1")
    box.document("d1").set({"sender": "doctor", "status": "delivered", "text": "Take care"})
    box.document("d2").set({"sender": "doctor", "status": "seen", "text": "Old"})

    await sync.handle(text_event(11, "Thanks"))

    d1 = box.document("d1").get().to_dict()
    assert d1["status"] == "seen"
    assert d1["seen"] is True


@pytest.mark.asyncio
async def test_scheduled_doctor_message_keeps_status(sync, messages):
    box = messages._messages("p1")
    box.document("s1").set({"sender": "doctor", "status": "scheduled", "text": "Come at 9"})

    await sync.handle(text_event(12, "hello"))

    s1 = box.document("s1").get().to_dict()
    assert s1["status"] == "scheduled"
    assert "seen" not in s1


@pytest.mark.asyncio
async def test_photo_is_rehosted(sync, messages, bucket, gateway):
    media = MediaInfo(kind="photo", file_id="F1", mime_type="image/jpeg", extension="jpg")
    event = InboundMessage(kind=InboundKind.NEW, chat_id="555", message_id=12, media=media)

    await sync.handle(event)

    (saved,) = transcript(messages).values()
    assert saved["image"].startswith(f"https://firebasestorage.googleapis.com/v0/b/{bucket.name}/o/patients%2Fp1%2Fchat%2Fphoto_")
    (path,) = bucket.uploads
    data, content_type, metadata = bucket.uploads[path]
    assert data == b"bytes"
    assert content_type == "image/jpeg"
    assert metadata["firebaseStorageDownloadTokens"] in saved["image"]
    gateway.download_file.assert_awaited_once_with("F1")


@pytest.mark.asyncio
async def test_voice_falls_back_to_gateway_url(sync, messages, gateway, fake_db):
    gateway.download_file.side_effect = BadRequest("File is too big")
    media = MediaInfo(kind="voice", file_id="V1", mime_type="audio/ogg", extension="ogg")
    event = InboundMessage(kind=InboundKind.NEW, chat_id="555", message_id=13, media=media)

    await sync.handle(event)

    (saved,) = transcript(messages).values()
    assert saved["voice"] == "https://api.telegram.org/file/bot/photos/file_1.jpg"
    assert fake_db.collection("patients").document("p1").get().to_dict()["lastMessage"] == "🎤 Voice"


@pytest.mark.asyncio
async def test_delete_command_by_reply_id(sync, messages, gateway):
    await sync.handle(text_event(20, "typo"))
    event = InboundMessage(
        kind=InboundKind.DELETE_COMMAND, chat_id="555", message_id=21, text="/del",
        reply=ReplyContextInfo(quoted_message_id=20, quoted_text="typo"),
    )

    outcome = await sync.handle(event)

    assert outcome == SyncOutcome.DELETED
    assert transcript(messages) == {}
    deleted = [c.args for c in gateway.delete_message.await_args_list]
    assert ("555", 20) in deleted
    assert ("555", 21) in deleted


@pytest.mark.asyncio
async def test_delete_command_falls_back_to_text(sync, messages, gateway):
    messages._messages("p1").document("legacy").set({"sender": "user", "text": "old words"})
    event = InboundMessage(
        kind=InboundKind.DELETE_COMMAND, chat_id="555", message_id=31, text="/del",
        reply=ReplyContextInfo(quoted_message_id=30, quoted_text="old words"),
    )

    outcome = await sync.handle(event)

    assert outcome == SyncOutcome.DELETED
    assert "legacy" not in transcript(messages)


@pytest.mark.asyncio
async def test_delete_command_gateway_failure_does_not_block_store(sync, messages, gateway):
    await sync.handle(text_event(40, "remove me"))
    gateway.delete_message.side_effect = BadRequest("Message can't be deleted")
    event = InboundMessage(
        kind=InboundKind.DELETE_COMMAND, chat_id="555", message_id=41, text="/del",
        reply=ReplyContextInfo(quoted_message_id=40, quoted_text="remove me"),
    )

    outcome = await sync.handle(event)

    assert outcome == SyncOutcome.DELETED
    assert transcript(messages) == {}


@pytest.mark.asyncio
async def test_delete_command_matches_scheduled_dashboard_message(sync, messages, gateway):
    messages._messages("p1").document("s1").set({
        "sender": "doctor",
        "status": "scheduled",
        "text": "Come at 9",
        "createdAt": "2025-03-10T04:00:00+00:00",
        "time": "09:00",
    })
    event = InboundMessage(
        kind=InboundKind.DELETE_COMMAND, chat_id="555", message_id=71, text="/del",
        reply=ReplyContextInfo(quoted_message_id=70, quoted_text="Come at 9"),
    )

    outcome = await sync.handle(event)

    assert outcome == SyncOutcome.DELETED
    assert "s1" not in transcript(messages)
    deleted = [c.args for c in gateway.delete_message.await_args_list]
    assert ("555", 70) in deleted
    assert ("555", 71) in deleted


@pytest.mark.asyncio
async def test_delete_command_lookup_failure_still_cleans_chat(sync, messages, gateway, monkeypatch):
    def broken(patient_id, text):
        raise ValueError("unreadable document")

    monkeypatch.setattr(messages, "find_by_text", broken)
    event = InboundMessage(
        kind=InboundKind.DELETE_COMMAND, chat_id="555", message_id=81, text="/del",
        reply=ReplyContextInfo(quoted_message_id=80, quoted_text="anything"),
    )

    outcome = await sync.handle(event)

    assert outcome == SyncOutcome.NOT_FOUND
    deleted = [c.args for c in gateway.delete_message.await_args_list]
    assert ("555", 80) in deleted
    assert ("555", 81) in deleted
    gateway.send_text.assert_awaited_once()


@pytest.mark.asyncio
async def test_delete_command_not_found_sends_expiring_notice(sync, gateway):
    event = InboundMessage(
        kind=InboundKind.DELETE_COMMAND, chat_id="555", message_id=51, text="/del",
        reply=ReplyContextInfo(quoted_message_id=50, quoted_text="never stored"),
    )

    outcome = await sync.handle(event)
    await asyncio.sleep(0.01)

    assert outcome == SyncOutcome.NOT_FOUND
    gateway.send_text.assert_awaited_once_with("555", "❌ No message found to delete.", markdown=False)
    notice_id = 1000
    assert ("555", notice_id) in [c.args for c in gateway.delete_message.await_args_list]


@pytest.mark.asyncio
async def test_edit_is_synced(sync, messages):
    await sync.handle(text_event(60, "helo"))
    edit = InboundMessage(kind=InboundKind.EDITED, chat_id="555", message_id=60, text="hello")

    outcome = await sync.handle(edit)

    assert outcome == SyncOutcome.EDITED
    (saved,) = transcript(messages).values()
    assert saved["text"] == "hello"
    assert saved["edited"] is True
    assert saved["editedAt"]


@pytest.mark.asyncio
async def test_edit_of_unknown_message(sync, messages):
    edit = InboundMessage(kind=InboundKind.EDITED, chat_id="555", message_id=61, text="hello")

    assert await sync.handle(edit) == SyncOutcome.NOT_FOUND
