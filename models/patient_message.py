from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class MessageSender(str, Enum):
    USER = "user"      # the patient, via the chat
    DOCTOR = "doctor"  # clinic staff, via the dashboard


class MessageStatus(str, Enum):
    SENT = "sent"
    DELIVERED = "delivered"
    SEEN = "seen"
    SCHEDULED = "scheduled"  # dashboard message waiting for its send time


class PatientMessage(BaseModel):
    """
    Transcript entry under patients/{patientId}/messages.

    telegramMessageId is unique per patient; it deduplicates inbound retries and
    links outbound delivery confirmations back to the dashboard's document.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    message_id: Optional[str] = Field(default=None, alias="id")
    patient_id: Optional[str] = Field(default=None, alias="patientId")
    sender: MessageSender = MessageSender.USER
    status: MessageStatus = MessageStatus.SENT
    text: str = ""
    image: Optional[str] = None
    voice: Optional[str] = None
    external_message_id: Optional[int] = Field(default=None, alias="telegramMessageId")
    created_at: str = Field(default="", alias="createdAt")
    time: Optional[str] = None
    edited: bool = False
    seen: bool = False

    @field_validator("status", mode="before")
    @classmethod
    def _unknown_status(cls, v):
        # statuses we don't model read as plain sent
        try:
            return MessageStatus(v) if v is not None else MessageStatus.SENT
        except ValueError:
            return MessageStatus.SENT

    @field_validator("external_message_id", mode="before")
    @classmethod
    def _as_int(cls, v):
        if v is None or v == "":
            return None
        try:
            return int(v)
        except (TypeError, ValueError):
            return None

    @classmethod
    def from_snapshot(cls, message_id: str, data: dict) -> "PatientMessage":
        return cls.model_validate({**(data or {}), "id": message_id})

    def to_document(self) -> dict:
        doc = self.model_dump(by_alias=True, exclude={"message_id", "patient_id"}, mode="json")
        return {k: v for k, v in doc.items() if v is not None}

    def preview(self) -> str:
        if self.text:
            return self.text
        if self.image:
            return "🖼 Photo"
        if self.voice:
            return "🎤 Voice"
        return ""
