from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import List, Tuple

from adapters.messaging_gateway import MessagingGateway
from models.patient import Injection, Patient
from shared import time
from shared.config import DEFAULT_LANGUAGE
from shared.outbound_worker import send_text_with_fallback
from shared.texts import t
from store.patient_store import PatientStore

logger = logging.getLogger(__name__)

SEND_PAUSE_SECONDS = 0.05


@dataclass
class ReminderRun:
    day: str
    matched: int = 0
    sent: int = 0


def reminder_text(patient: Patient, injection: Injection, default_language: str = DEFAULT_LANGUAGE) -> str:
    lang = patient.language(default_language)
    shown_date, shown_time = time.split_injection_date(injection.date)
    body = t(lang, "injection_msg", name=patient.display_name(), date=shown_date, time=shown_time)
    return f"{t(lang, 'reminder_title')}\n\n{body}"


class ReminderSweep:
    """
    Sends injection reminders straight through the gateway, bypassing the
    outbound queue. Nothing is persisted: running twice on one day sends twice.
    """

    def __init__(self, gateway: MessagingGateway, patient_store: PatientStore, default_language: str = DEFAULT_LANGUAGE):
        self.gateway = gateway
        self.patients = patient_store
        self.default_language = default_language

    def find_due(self, day: str) -> List[Tuple[Patient, Injection]]:
        due = []
        for patient in self.patients.list_registered():
            # first scheduled injection on that calendar day
            injection = next((inj for inj in patient.injections if inj.is_scheduled_on(day)), None)
            if injection is not None:
                due.append((patient, injection))
        return due

    async def run(self, days_offset: int = 1) -> ReminderRun:
        day = time.local_date_str(days_offset)
        result = ReminderRun(day=day)
        logger.info("[REMINDERS] Checking reminders for %s", day)

        for patient, injection in self.find_due(day):
            result.matched += 1
            text = reminder_text(patient, injection, self.default_language)
            logger.info("[REMINDERS] Sending reminder to %s (%s)", patient.display_name(), patient.chat_identity)
            message_id = await send_text_with_fallback(self.gateway, patient.chat_identity, text)
            if message_id is None:
                logger.error("[REMINDERS] Failed to send reminder to %s", patient.chat_identity)
            else:
                result.sent += 1
            await asyncio.sleep(SEND_PAUSE_SECONDS)

        logger.info("[REMINDERS] Done for %s: matched=%d sent=%d", day, result.matched, result.sent)
        return result
