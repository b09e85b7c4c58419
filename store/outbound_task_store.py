from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import List, Optional

from firebase_admin import firestore
from google.cloud.firestore_v1 import FieldFilter

from models.outbound_task import OutboundTask, TaskAction, TaskStatus, TERMINAL_STATUSES
from shared import time
from shared.config import OUTBOUND_COLLECTION

logger = logging.getLogger(__name__)


def _claim_in_transaction(tx, doc_ref, claimed_at: str) -> bool:
    """
    Compare-and-set PENDING -> PROCESSING inside an open transaction.
    Returns False when the task is gone or no longer PENDING.
    """
    snap = doc_ref.get(transaction=tx)
    if not snap.exists:
        return False
    data = snap.to_dict() or {}
    if data.get("status") != TaskStatus.PENDING.value:
        return False
    tx.update(doc_ref, {"status": TaskStatus.PROCESSING.value, "claimedAt": claimed_at})
    return True


def _reset_in_transaction(tx, doc_ref, expected: TaskStatus, new_fields: dict, claimed_before: Optional[str] = None) -> bool:
    snap = doc_ref.get(transaction=tx)
    if not snap.exists:
        return False
    data = snap.to_dict() or {}
    if data.get("status") != expected.value:
        return False
    if claimed_before is not None and (data.get("claimedAt") or "") >= claimed_before:
        return False
    tx.update(doc_ref, new_fields)
    return True


class OutboundTaskStore:
    """
    Firestore-backed outbound queue. The dashboard writes tasks, the outbound
    worker claims and retires them.
    """

    def __init__(self, db=None, collection_name: str = OUTBOUND_COLLECTION):
        if db is None:
            from db.base import get_db
            db = get_db()
        self.db = db
        self.collection = db.collection(collection_name)

    # --- Reads ----------------------------------------------------------------

    def list_pending(self) -> List[OutboundTask]:
        """All PENDING tasks, oldest createdAt first."""
        docs = self.collection.where(filter=FieldFilter("status", "==", TaskStatus.PENDING.value)).stream()
        tasks: List[OutboundTask] = []
        for doc in docs:
            if not doc.exists:
                continue
            try:
                tasks.append(OutboundTask.from_snapshot(doc.id, doc.to_dict()))
            except ValueError:
                logger.exception("[TASKS] Unreadable task %s, marking FAILED", doc.id)
                self.mark_failed(doc.id, "Malformed task document")
        # ISO-8601 strings sort lexicographically
        tasks.sort(key=lambda t: t.created_at)
        return tasks

    def get(self, task_id: str) -> Optional[OutboundTask]:
        snap = self.collection.document(task_id).get()
        if not snap.exists:
            return None
        return OutboundTask.from_snapshot(task_id, snap.to_dict())

    # --- Claim ----------------------------------------------------------------

    def claim(self, task_id: str) -> bool:
        """
        Atomically move a task from PENDING to PROCESSING.
        False means another worker won it, or it was deleted.
        """
        doc_ref = self.collection.document(task_id)
        transaction = self.db.transaction()
        claimed_at = time.utcnow_iso()

        @firestore.transactional
        def _claim(tx):
            return _claim_in_transaction(tx, doc_ref, claimed_at)

        try:
            claimed = _claim(transaction)
        except Exception:
            # contention exhausted the retries; treat as lost race
            logger.exception("[TASKS] Claim transaction failed for %s", task_id)
            return False

        if not claimed:
            logger.info("[TASKS] Claim conflict for %s, skipping", task_id)
        return claimed

    # --- Status write-back ----------------------------------------------------

    def mark_delivered(self, task_id: str, message_id: int, sent_at: Optional[str] = None) -> None:
        self.collection.document(task_id).update({
            "status": TaskStatus.DELIVERED.value,
            "sentAt": sent_at or time.utcnow_iso(),
            "telegramMessageId": message_id,
        })

    def mark_failed(self, task_id: str, error: str) -> None:
        self.collection.document(task_id).update({
            "status": TaskStatus.FAILED.value,
            "error": error,
            "failedAt": time.utcnow_iso(),
        })

    def mark_status(self, task_id: str, status: TaskStatus) -> None:
        self.collection.document(task_id).update({
            "status": status.value,
            "updatedAt": time.utcnow_iso(),
        })

    # --- Housekeeping ---------------------------------------------------------

    def promote_due_scheduled(self, now: Optional[datetime] = None) -> int:
        """Move QUEUED tasks whose scheduledFor has passed to PENDING."""
        now = now or time.utcnow()
        docs = self.collection.where(filter=FieldFilter("status", "==", TaskStatus.QUEUED.value)).stream()
        promoted = 0
        for doc in docs:
            data = doc.to_dict() or {}
            due = time.parse_iso_utc(data.get("scheduledFor"))
            if due is None or due > now:
                continue
            if self._transition(doc.reference, TaskStatus.QUEUED, {"status": TaskStatus.PENDING.value}):
                promoted += 1
        if promoted:
            logger.info("[TASKS] Promoted %d scheduled task(s) to PENDING", promoted)
        return promoted

    def reclaim_stale(self, older_than: timedelta) -> int:
        """
        Return PROCESSING tasks claimed before now - older_than to PENDING.
        A reclaimed task may be delivered twice if the original worker died after
        the gateway accepted it.
        """
        cutoff = (time.utcnow() - older_than).isoformat()
        docs = self.collection.where(filter=FieldFilter("status", "==", TaskStatus.PROCESSING.value)).stream()
        reclaimed = 0
        for doc in docs:
            data = doc.to_dict() or {}
            if (data.get("claimedAt") or "") >= cutoff:
                continue
            fields = {
                "status": TaskStatus.PENDING.value,
                "reclaimCount": firestore.Increment(1),
                "reclaimedAt": time.utcnow_iso(),
            }
            if self._transition(doc.reference, TaskStatus.PROCESSING, fields, claimed_before=cutoff):
                logger.warning("[TASKS] Reclaimed stale task %s (claimedAt=%s)", doc.id, data.get("claimedAt"))
                reclaimed += 1
        return reclaimed

    def cleanup_terminal(self, older_than: timedelta = timedelta(hours=24)) -> int:
        """Delete finished tasks created before now - older_than."""
        cutoff = (time.utcnow() - older_than).isoformat()
        statuses = [s.value for s in TERMINAL_STATUSES]
        docs = self.collection.where(filter=FieldFilter("status", "in", statuses)).stream()
        deleted = 0
        for doc in docs:
            data = doc.to_dict() or {}
            created = data.get("createdAt") or ""
            created = created.isoformat() if hasattr(created, "isoformat") else str(created)
            if not created or created >= cutoff:
                continue
            doc.reference.delete()
            deleted += 1
        logger.info("[TASKS] Cleanup removed %d finished task(s) older than %s", deleted, cutoff)
        return deleted

    def enqueue(
        self,
        chat_id: str,
        text: Optional[str] = None,
        *,
        action: TaskAction = TaskAction.SEND,
        image_url: Optional[str] = None,
        voice_url: Optional[str] = None,
        target_message_id: Optional[int] = None,
        patient_id: Optional[str] = None,
        original_message_id: Optional[str] = None,
    ) -> str:
        """Write a PENDING task the same shape the dashboard does."""
        doc_ref = self.collection.document()
        doc = {
            "telegramChatId": str(chat_id),
            "action": action.value,
            "status": TaskStatus.PENDING.value,
            "createdAt": time.utcnow_iso(),
        }
        optional = {
            "text": text,
            "imageUrl": image_url,
            "voiceUrl": voice_url,
            "telegramMessageId": target_message_id,
            "patientId": patient_id,
            "originalMessageId": original_message_id,
        }
        doc.update({k: v for k, v in optional.items() if v is not None})
        doc_ref.set(doc)
        logger.info("[TASKS] Enqueued %s task %s for chat %s", action.value, doc_ref.id, chat_id)
        return doc_ref.id

    def _transition(self, doc_ref, expected: TaskStatus, fields: dict, claimed_before: Optional[str] = None) -> bool:
        transaction = self.db.transaction()

        @firestore.transactional
        def _run(tx):
            return _reset_in_transaction(tx, doc_ref, expected, fields, claimed_before)

        try:
            return _run(transaction)
        except Exception:
            logger.exception("[TASKS] Transition %s failed for %s", expected.value, doc_ref.id)
            return False
