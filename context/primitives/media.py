from dataclasses import dataclass
from typing import Optional


@dataclass
class MediaInfo:
    kind: str                     # "photo" | "voice"
    file_id: str                  # gateway file handle, resolve with fetch_file_url
    mime_type: Optional[str] = None
    extension: str = "bin"
