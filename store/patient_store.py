from __future__ import annotations

import logging
from typing import Iterator, List, Optional, Union

from firebase_admin import firestore
from google.cloud.firestore_v1 import FieldFilter

from models.patient import Patient
from shared import time

logger = logging.getLogger(__name__)
COLLECTION_NAME = "patients"


def chat_id_variants(chat_id: Union[str, int]) -> List[Union[str, int]]:
    """Older documents stored the chat id as a number."""
    s = str(chat_id).strip()
    variants: List[Union[str, int]] = [s]
    if s.lstrip("-").isdigit():
        variants.append(int(s))
    return variants


def phone_variants(raw_phone: str) -> List[str]:
    """
    Telegram sends "998937489141" or "+998937489141"; the dashboard may have
    stored "+998 93 748 91 41".
    """
    phone = "".join((raw_phone or "").split())
    if not phone.startswith("+"):
        phone = "+" + phone
    variants = [phone]
    if phone.startswith("+998") and len(phone) == 13:
        variants.append(f"{phone[:4]} {phone[4:6]} {phone[6:9]} {phone[9:11]} {phone[11:13]}")
    return variants


class PatientStore:
    def __init__(self, db=None):
        if db is None:
            from db.base import get_db
            db = get_db()
        self.db = db
        self.collection = db.collection(COLLECTION_NAME)

    def find_by_chat_id(self, chat_id: Union[str, int]) -> Optional[Patient]:
        query = (
            self.collection
            .where(filter=FieldFilter("telegramChatId", "in", chat_id_variants(chat_id)))
            .limit(1)
        )
        for doc in query.stream():
            return Patient.from_snapshot(doc.id, doc.to_dict())
        return None

    def find_by_phone(self, raw_phone: str) -> Optional[Patient]:
        variants = phone_variants(raw_phone)
        logger.info("[PATIENTS] Searching patient with phone variants %s", variants)
        query = self.collection.where(filter=FieldFilter("phone", "in", variants)).limit(1)
        for doc in query.stream():
            return Patient.from_snapshot(doc.id, doc.to_dict())
        return None

    def link_chat_identity(self, patient_id: str, chat_id: str, language: str) -> bool:
        """
        Attach a verified chat to a patient. The chat identity is set once; a
        patient already linked to a different chat is left untouched.
        """
        doc_ref = self.collection.document(patient_id)
        snap = doc_ref.get()
        if not snap.exists:
            return False
        current = (snap.to_dict() or {}).get("telegramChatId")
        if current not in (None, "") and str(current) != str(chat_id):
            logger.warning(
                "[PATIENTS] Patient %s already linked to chat %s, refusing %s", patient_id, current, chat_id
            )
            return False
        doc_ref.update({"telegramChatId": str(chat_id), "botLanguage": language})
        return True

    def touch_activity(self, patient_id: str, preview: str, increment_unread: bool = True) -> None:
        now = time.utcnow()
        fields = {
            "lastActive": now.isoformat(),
            "lastMessage": preview,
            "lastMessageTime": now.astimezone(time.bot_tz()).strftime("%H:%M"),
            "lastMessageTimestamp": now.isoformat(),
            "userIsTyping": False,
        }
        if increment_unread:
            fields["unreadCount"] = firestore.Increment(1)
        self.collection.document(patient_id).update(fields)

    def list_registered(self) -> Iterator[Patient]:
        """Every patient that has completed the chat verification."""
        for doc in self.collection.stream():
            data = doc.to_dict() or {}
            if not data.get("telegramChatId"):
                continue
            try:
                yield Patient.from_snapshot(doc.id, data)
            except ValueError:
                logger.exception("[PATIENTS] Skipping unreadable patient %s", doc.id)
