from __future__ import annotations

import logging
from typing import Optional

from google.cloud.firestore_v1 import FieldFilter

from models.patient_message import MessageSender, MessageStatus, PatientMessage
from shared import time
from store.patient_store import COLLECTION_NAME as PATIENTS

logger = logging.getLogger(__name__)

READABLE_STATUSES = [MessageStatus.SENT.value, MessageStatus.DELIVERED.value]


def _message_id_variants(message_id) -> list:
    # the dashboard writes numbers, older bot builds wrote strings
    try:
        as_int = int(message_id)
    except (TypeError, ValueError):
        return [message_id]
    return [as_int, str(as_int)]


class PatientMessageStore:
    """Per-patient transcript: patients/{patientId}/messages."""

    def __init__(self, db=None):
        if db is None:
            from db.base import get_db
            db = get_db()
        self.db = db

    def _messages(self, patient_id: str):
        return self.db.collection(PATIENTS).document(patient_id).collection("messages")

    def add(self, patient_id: str, message: PatientMessage) -> str:
        doc_ref = self._messages(patient_id).document()
        doc_ref.set(message.to_document())
        logger.info("[MESSAGES] Saved message %s for patient %s", doc_ref.id, patient_id)
        return doc_ref.id

    def find_by_external_id(self, patient_id: str, external_message_id) -> Optional[PatientMessage]:
        query = (
            self._messages(patient_id)
            .where(filter=FieldFilter("telegramMessageId", "in", _message_id_variants(external_message_id)))
            .limit(1)
        )
        for doc in query.stream():
            return PatientMessage.from_snapshot(doc.id, doc.to_dict())
        return None

    def find_by_text(self, patient_id: str, text: str) -> Optional[PatientMessage]:
        if not text:
            return None
        query = self._messages(patient_id).where(filter=FieldFilter("text", "==", text)).limit(1)
        for doc in query.stream():
            return PatientMessage.from_snapshot(doc.id, doc.to_dict())
        return None

    def mark_doctor_messages_seen(self, patient_id: str) -> int:
        """
        Doctor messages the patient has now implicitly read. Scheduled ones
        have not reached the chat yet and keep their status.
        """
        docs = (
            self._messages(patient_id)
            .where(filter=FieldFilter("sender", "==", MessageSender.DOCTOR.value))
            .where(filter=FieldFilter("status", "in", READABLE_STATUSES))
            .stream()
        )
        updated = 0
        for doc in docs:
            doc.reference.update({"status": MessageStatus.SEEN.value, "seen": True})
            updated += 1
        return updated

    def link_delivery(self, patient_id: str, message_id: str, external_message_id: int) -> None:
        """One idempotent write: status, gateway id and delivery time together."""
        self._messages(patient_id).document(message_id).update({
            "status": MessageStatus.DELIVERED.value,
            "telegramMessageId": external_message_id,
            "deliveredAt": time.utcnow_iso(),
        })

    def apply_edit(self, patient_id: str, message_id: str, text: str) -> None:
        self._messages(patient_id).document(message_id).update({
            "text": text,
            "edited": True,
            "editedAt": time.utcnow_iso(),
        })

    def delete(self, patient_id: str, message_id: str) -> None:
        self._messages(patient_id).document(message_id).delete()
        logger.info("[MESSAGES] Deleted message %s for patient %s", message_id, patient_id)
