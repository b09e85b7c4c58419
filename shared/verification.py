"""
Patient verification over chat: language choice, then a shared contact whose
phone number is matched against the patients collection.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from models.patient import Patient
from shared import time
from shared.config import DEFAULT_LANGUAGE
from shared.texts import LANGUAGES, PROFILE_NOT_FOUND, t
from store.bot_session_store import BotSessionStore
from store.patient_store import PatientStore

logger = logging.getLogger(__name__)


class VerifyOutcome(str, Enum):
    LINKED = "linked"
    NOT_OWN_CONTACT = "not_own_contact"
    NOT_FOUND = "not_found"
    ALREADY_LINKED = "already_linked"


@dataclass
class VerifyResult:
    outcome: VerifyOutcome
    language: str
    patient: Optional[Patient] = None


class PatientVerification:
    def __init__(self, patient_store: PatientStore, session_store: BotSessionStore, default_language: str = DEFAULT_LANGUAGE):
        self.patients = patient_store
        self.sessions = session_store
        self.default_language = default_language

    def choose_language(self, chat_id: str, language: str) -> str:
        if language not in LANGUAGES:
            language = self.default_language
        self.sessions.save(chat_id, language)
        return language

    def session_language(self, chat_id: str) -> str:
        session = self.sessions.load(chat_id)
        return (session or {}).get("language") or self.default_language

    def verify_contact(self, chat_id: str, sender_user_id: int, contact_user_id: Optional[int], phone: str) -> VerifyResult:
        lang = self.session_language(chat_id)

        # a forwarded card of somebody else must not link their record
        if contact_user_id is None or contact_user_id != sender_user_id:
            return VerifyResult(VerifyOutcome.NOT_OWN_CONTACT, lang)

        patient = self.patients.find_by_phone(phone)
        if patient is None:
            logger.info("[VERIFY] No patient for phone of chat %s", chat_id)
            return VerifyResult(VerifyOutcome.NOT_FOUND, lang)

        if not self.patients.link_chat_identity(patient.patient_id, chat_id, lang):
            return VerifyResult(VerifyOutcome.ALREADY_LINKED, lang, patient)

        self.sessions.clear(chat_id)
        logger.info("[VERIFY] Patient verified: %s (%s)", patient.display_name(), patient.patient_id)
        return VerifyResult(VerifyOutcome.LINKED, lang, patient)

    def schedule_text(self, chat_id: str) -> str:
        patient = self.patients.find_by_chat_id(chat_id)
        if patient is None:
            return PROFILE_NOT_FOUND
        return render_schedule(patient, self.default_language)


def render_schedule(patient: Patient, default_language: str = DEFAULT_LANGUAGE) -> str:
    lang = patient.language(default_language)
    name = patient.display_name()
    upcoming = patient.upcoming_injections(time.local_date_str(0))
    if not upcoming:
        return t(lang, "no_injection_found", name=name)

    items = []
    for inj in upcoming:
        shown_date, shown_time = time.split_injection_date(inj.date)
        items.append(t(lang, "schedule_item", date=shown_date, time=shown_time))
    return t(lang, "schedule_header", name=name) + "\n".join(items)
