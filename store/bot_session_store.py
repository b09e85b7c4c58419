from __future__ import annotations

from datetime import timedelta
from typing import Optional

from shared import time
from shared.config import SESSION_TTL_MINUTES

COLLECTION_NAME = "bot_sessions"


class BotSessionStore:
    """
    Short-lived verification state keyed by chat id (currently the chosen
    language). Kept in Firestore so any worker instance can finish a handshake
    started on another one, and so a restart does not lose it.
    """

    def __init__(self, db=None, ttl: timedelta = timedelta(minutes=SESSION_TTL_MINUTES)):
        if db is None:
            from db.base import get_db
            db = get_db()
        self.db = db
        self.ttl = ttl
        self.collection = db.collection(COLLECTION_NAME)

    def save(self, chat_id: str, language: str) -> None:
        now = time.utcnow()
        self.collection.document(str(chat_id)).set({
            "chat_id": str(chat_id),
            "language": language,
            "created_at": now.isoformat(),
            "expires_at": (now + self.ttl).isoformat(),
        })

    def load(self, chat_id: str) -> Optional[dict]:
        snap = self.collection.document(str(chat_id)).get()
        if not snap.exists:
            return None
        data = snap.to_dict() or {}
        expires = time.parse_iso_utc(data.get("expires_at"))
        if expires is None or expires <= time.utcnow():
            return None
        return data

    def clear(self, chat_id: str) -> None:
        self.collection.document(str(chat_id)).delete()
