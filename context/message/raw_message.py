from dataclasses import dataclass
from enum import Enum
from typing import Optional

from context.primitives.media import MediaInfo
from context.primitives.replies_info import ReplyContextInfo


class InboundKind(str, Enum):
    NEW = "new"            # text / photo / voice
    EDITED = "edited"
    DELETE_COMMAND = "delete_command"


@dataclass
class InboundMessage:
    """Gateway-neutral view of one incoming chat event."""
    kind: InboundKind
    chat_id: str
    message_id: int
    text: Optional[str] = None
    media: Optional[MediaInfo] = None
    reply: Optional[ReplyContextInfo] = None

    @property
    def idempotency_key(self) -> str:
        return f"{self.chat_id}:{self.message_id}"
