"""
Mirrors incoming chat traffic into patients/{patientId}/messages.

Side effects here are independent and best-effort: a failed gateway delete
does not block the transcript delete and vice versa, so the dashboard view and
the real chat history may briefly disagree.
"""
from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Optional, Set

from adapters.messaging_gateway import MessagingGateway
from context.message.raw_message import InboundKind, InboundMessage
from context.primitives.replies_info import ReplyContextInfo
from models.patient import Patient
from models.patient_message import MessageSender, MessageStatus, PatientMessage
from shared import time
from shared.config import DEFAULT_LANGUAGE
from shared.media_rehost import MediaRehoster
from shared.texts import t
from store.patient_message_store import PatientMessageStore
from store.patient_store import PatientStore

logger = logging.getLogger(__name__)

NOTICE_TTL_SECONDS = 5.0


class SyncOutcome(str, Enum):
    SAVED = "saved"
    DUPLICATE = "duplicate"
    UNREGISTERED = "unregistered"
    IGNORED = "ignored"
    DELETED = "deleted"
    NOT_FOUND = "not_found"
    EDITED = "edited"


class InboundSync:
    def __init__(
        self,
        gateway: MessagingGateway,
        patient_store: PatientStore,
        message_store: PatientMessageStore,
        rehoster: MediaRehoster,
        default_language: str = DEFAULT_LANGUAGE,
        notice_ttl: float = NOTICE_TTL_SECONDS,
    ):
        self.gateway = gateway
        self.patients = patient_store
        self.messages = message_store
        self.rehoster = rehoster
        self.default_language = default_language
        self.notice_ttl = notice_ttl
        self._background: Set[asyncio.Task] = set()

    async def handle(self, event: InboundMessage) -> SyncOutcome:
        if event.kind == InboundKind.DELETE_COMMAND:
            return await self.on_delete_command(event)
        if event.kind == InboundKind.EDITED:
            return await self.on_edit(event)
        return await self.on_new(event)

    def _resolve(self, event: InboundMessage) -> Optional[Patient]:
        patient = self.patients.find_by_chat_id(event.chat_id)
        if patient is None:
            # expected for anyone who never verified; not a fault
            logger.info("[INBOUND] drop unregistered chat_id=%s kind=%s", event.chat_id, event.kind.value)
        return patient

    # --- New content ----------------------------------------------------------

    async def on_new(self, event: InboundMessage) -> SyncOutcome:
        if not (event.text or event.media):
            return SyncOutcome.IGNORED

        patient = self._resolve(event)
        if patient is None:
            return SyncOutcome.UNREGISTERED
        pid = patient.patient_id

        # gateway retries deliver the same update again
        if self.messages.find_by_external_id(pid, event.message_id) is not None:
            logger.info("[INBOUND] Duplicate message %s for patient %s, skipping", event.idempotency_key, pid)
            return SyncOutcome.DUPLICATE

        now = time.utcnow()
        message = PatientMessage(
            sender=MessageSender.USER,
            status=MessageStatus.SENT,
            text=event.text or "",
            external_message_id=event.message_id,
            created_at=now.isoformat(),
            time=now.astimezone(time.bot_tz()).strftime("%H:%M"),
        )
        if event.media is not None:
            url = await self.rehoster.rehost(pid, event.media, event.message_id)
            if event.media.kind == "photo":
                message.image = url
            else:
                message.voice = url

        self.messages.add(pid, message)

        self._touch_activity(pid, message.preview())
        self._mark_seen(pid)
        return SyncOutcome.SAVED

    def _touch_activity(self, patient_id: str, preview: str) -> bool:
        try:
            self.patients.touch_activity(patient_id, preview)
            return True
        except Exception:
            logger.exception("[INBOUND] Activity update failed for patient %s", patient_id)
            return False

    def _mark_seen(self, patient_id: str) -> bool:
        try:
            self.messages.mark_doctor_messages_seen(patient_id)
            return True
        except Exception:
            logger.exception("[INBOUND] Seen marking failed for patient %s", patient_id)
            return False

    # --- /del as a reply --------------------------------------------------------

    async def on_delete_command(self, event: InboundMessage) -> SyncOutcome:
        patient = self._resolve(event)
        if patient is None:
            return SyncOutcome.UNREGISTERED
        pid = patient.patient_id
        lang = patient.language(self.default_language)

        reply = event.reply
        target = self._find_target(pid, reply) if reply is not None else None

        deleted = False
        if target is not None:
            try:
                self.messages.delete(pid, target.message_id)
                deleted = True
            except Exception:
                logger.exception("[INBOUND] Transcript delete failed for patient %s message %s", pid, target.message_id)

        if reply is not None and reply.quoted_message_id is not None:
            await self._gateway_delete(event.chat_id, reply.quoted_message_id)
        await self._gateway_delete(event.chat_id, event.message_id)

        if target is None:
            await self._notify(event.chat_id, t(lang, "delete_not_found"))
            return SyncOutcome.NOT_FOUND
        return SyncOutcome.DELETED if deleted else SyncOutcome.NOT_FOUND

    def _find_target(self, patient_id: str, reply: ReplyContextInfo) -> Optional[PatientMessage]:
        try:
            target = None
            if reply.quoted_message_id is not None:
                target = self.messages.find_by_external_id(patient_id, reply.quoted_message_id)
            if target is None and reply.quoted_text:
                # messages saved before ids were linked
                target = self.messages.find_by_text(patient_id, reply.quoted_text)
            return target
        except Exception:
            logger.exception("[INBOUND] Lookup of quoted message failed for patient %s", patient_id)
            return None

    async def _gateway_delete(self, chat_id: str, message_id: int) -> bool:
        try:
            await self.gateway.delete_message(chat_id, message_id)
            return True
        except Exception as e:
            logger.warning("[INBOUND] Gateway delete of %s in %s failed: %s", message_id, chat_id, e)
            return False

    async def _notify(self, chat_id: str, text: str) -> None:
        """Short notice that removes itself after notice_ttl seconds."""
        try:
            notice_id = await self.gateway.send_text(chat_id, text, markdown=False)
        except Exception:
            logger.exception("[INBOUND] Could not send notice to %s", chat_id)
            return
        task = asyncio.create_task(self._expire(chat_id, notice_id))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _expire(self, chat_id: str, message_id: int) -> None:
        await asyncio.sleep(self.notice_ttl)
        await self._gateway_delete(chat_id, message_id)

    # --- Edits ----------------------------------------------------------------

    async def on_edit(self, event: InboundMessage) -> SyncOutcome:
        if event.text is None:
            return SyncOutcome.IGNORED
        patient = self._resolve(event)
        if patient is None:
            return SyncOutcome.UNREGISTERED
        pid = patient.patient_id

        target = self.messages.find_by_external_id(pid, event.message_id)
        if target is None:
            logger.info("[INBOUND] Edit for unknown message %s (patient %s)", event.message_id, pid)
            return SyncOutcome.NOT_FOUND

        self.messages.apply_edit(pid, target.message_id, event.text)
        logger.info("[INBOUND] Synced edit of message %s for patient %s", event.message_id, pid)
        return SyncOutcome.EDITED
