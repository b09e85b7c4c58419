import logging
import uuid
from typing import Optional
from urllib.parse import quote

from adapters.messaging_gateway import MessagingGateway
from context.primitives.media import MediaInfo
from shared import time

logger = logging.getLogger(__name__)


def storage_path(patient_id: str, media: MediaInfo, message_id: int) -> str:
    stamp = time.utcnow().strftime("%Y%m%dT%H%M%S%f")
    return f"patients/{patient_id}/chat/{media.kind}_{stamp}_{message_id}.{media.extension}"


def firebase_download_url(bucket_name: str, path: str, token: str) -> str:
    return (
        f"https://firebasestorage.googleapis.com/v0/b/{bucket_name}/o/"
        f"{quote(path, safe='')}?alt=media&token={token}"
    )


class MediaRehoster:
    """
    Copies inbound attachments from the gateway's expiring file URLs into the
    project's storage bucket so the dashboard keeps a stable link.
    """

    def __init__(self, gateway: MessagingGateway, bucket=None):
        self.gateway = gateway
        self._bucket = bucket

    @property
    def bucket(self):
        if self._bucket is None:
            from db.base import get_bucket
            self._bucket = get_bucket()
        return self._bucket

    async def rehost(self, patient_id: str, media: MediaInfo, message_id: int) -> Optional[str]:
        """Stable URL, or the gateway's transient URL when the upload fails."""
        try:
            data = await self.gateway.download_file(media.file_id)
            path = storage_path(patient_id, media, message_id)
            token = uuid.uuid4().hex
            blob = self.bucket.blob(path)
            blob.metadata = {"firebaseStorageDownloadTokens": token}
            blob.upload_from_string(data, content_type=media.mime_type)
            url = firebase_download_url(self.bucket.name, path, token)
            logger.info("[INBOUND] Re-hosted %s for patient %s at %s", media.kind, patient_id, path)
            return url
        except Exception:
            logger.exception("[INBOUND] Re-hosting %s failed for patient %s; using gateway URL", media.kind, patient_id)

        try:
            return await self.gateway.fetch_file_url(media.file_id)
        except Exception:
            logger.exception("[INBOUND] Could not resolve gateway URL for %s", media.file_id)
            return None
