from __future__ import annotations

from enum import Enum
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


class TaskStatus(str, Enum):
    QUEUED = "QUEUED"          # dashboard-scheduled, waiting for scheduledFor
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    DELIVERED = "delivered"
    FAILED = "FAILED"
    EDITED = "EDITED"
    DELETED = "DELETED"
    SENT = "SENT"              # legacy terminal status written by older workers


TERMINAL_STATUSES = (
    TaskStatus.DELIVERED,
    TaskStatus.SENT,
    TaskStatus.FAILED,
    TaskStatus.EDITED,
    TaskStatus.DELETED,
)


class TaskAction(str, Enum):
    SEND = "SEND"
    EDIT = "EDIT"
    DELETE = "DELETE"


class OutboundTask(BaseModel):
    """
    One document of the outbound queue collection, written by the dashboard
    (or by tools) and drained by the outbound worker.

    Field aliases are the camelCase names the dashboard writes.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore", use_enum_values=False)

    task_id: str = Field(alias="id")
    status: TaskStatus = TaskStatus.PENDING
    action: TaskAction = TaskAction.SEND

    target_chat_id: Optional[str] = Field(default=None, alias="telegramChatId")
    text: Optional[str] = None
    image_url: Optional[str] = Field(default=None, alias="imageUrl")
    voice_url: Optional[str] = Field(default=None, alias="voiceUrl")

    target_message_id: Optional[int] = Field(default=None, alias="telegramMessageId")
    reply_to_message_id: Optional[int] = Field(default=None, alias="replyToMessageId")

    original_message_id: Optional[str] = Field(default=None, alias="originalMessageId")
    patient_id: Optional[str] = Field(default=None, alias="patientId")

    created_at: str = Field(default="", alias="createdAt")
    scheduled_for: Optional[str] = Field(default=None, alias="scheduledFor")
    claimed_at: Optional[str] = Field(default=None, alias="claimedAt")
    sent_at: Optional[str] = Field(default=None, alias="sentAt")
    error: Optional[str] = None

    @field_validator("action", mode="before")
    @classmethod
    def _default_action(cls, v):
        # a missing or blank action means SEND
        if v is None or (isinstance(v, str) and not v.strip()):
            return TaskAction.SEND
        return v.upper() if isinstance(v, str) else v

    @field_validator("target_chat_id", mode="before")
    @classmethod
    def _chat_id_as_str(cls, v):
        if v is None or v == "":
            return None
        return str(v)

    @field_validator("target_message_id", "reply_to_message_id", mode="before")
    @classmethod
    def _message_id_as_int(cls, v: Union[int, str, None]):
        if v is None or v == "":
            return None
        try:
            return int(v)
        except (TypeError, ValueError):
            return None

    @field_validator("created_at", mode="before")
    @classmethod
    def _created_at_as_str(cls, v):
        if v is None:
            return ""
        # Firestore timestamps come back as datetimes
        iso = getattr(v, "isoformat", None)
        return iso() if callable(iso) else str(v)

    @classmethod
    def from_snapshot(cls, task_id: str, data: dict) -> "OutboundTask":
        return cls.model_validate({**(data or {}), "id": task_id})

    def has_content(self) -> bool:
        return bool((self.text or "").strip() or self.image_url or self.voice_url)
