from __future__ import annotations

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class InjectionStatus(str, Enum):
    SCHEDULED = "Scheduled"
    COMPLETED = "Completed"
    MISSED = "Missed"
    CANCELLED = "Cancelled"


class Injection(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: Optional[str] = None
    date: str = ""   # "YYYY-MM-DD" or "YYYY-MM-DDTHH:MM[:SS]"
    status: Optional[InjectionStatus] = None
    dose: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("status", mode="before")
    @classmethod
    def _unknown_status(cls, v):
        # dashboard occasionally writes statuses we don't model; treat them as not scheduled
        try:
            return InjectionStatus(v) if v is not None else None
        except ValueError:
            return None

    def is_scheduled_on(self, day: str) -> bool:
        return self.status == InjectionStatus.SCHEDULED and bool(self.date) and self.date.startswith(day)


class Patient(BaseModel):
    """The slice of the dashboard's patient document this service reads."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    patient_id: str = Field(alias="id")
    full_name: Optional[str] = Field(default=None, alias="fullName")
    name: Optional[str] = None
    phone: Optional[str] = None
    chat_identity: Optional[str] = Field(default=None, alias="telegramChatId")
    preferred_language: Optional[str] = Field(default=None, alias="botLanguage")
    injections: List[Injection] = Field(default_factory=list)

    @field_validator("chat_identity", mode="before")
    @classmethod
    def _chat_as_str(cls, v):
        if v is None or v == "":
            return None
        return str(v)

    @field_validator("injections", mode="before")
    @classmethod
    def _injections_list(cls, v):
        return v if isinstance(v, list) else []

    @classmethod
    def from_snapshot(cls, patient_id: str, data: dict) -> "Patient":
        return cls.model_validate({**(data or {}), "id": patient_id})

    def display_name(self, fallback: str = "Patient") -> str:
        return self.full_name or self.name or fallback

    def language(self, default: str) -> str:
        return self.preferred_language or default

    def upcoming_injections(self, from_day: str) -> List[Injection]:
        """Scheduled injections on or after from_day (YYYY-MM-DD), earliest first."""
        upcoming = [
            inj for inj in self.injections
            if inj.status == InjectionStatus.SCHEDULED and inj.date and inj.date >= from_day
        ]
        return sorted(upcoming, key=lambda inj: inj.date)
