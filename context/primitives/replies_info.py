from dataclasses import dataclass
from typing import Optional


@dataclass
class ReplyContextInfo:
    quoted_message_id: Optional[int]
    # text or caption of the replied-to message, used when the id is not linked yet
    quoted_text: Optional[str] = None
