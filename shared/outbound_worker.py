"""
Claim-and-process loop for the outbound queue.

Every cycle reads the PENDING tasks, orders them by createdAt and handles them
one at a time. A task is only dispatched after a transactional claim moved it
to PROCESSING, so several worker processes can poll the same collection. Every
claimed task ends in delivered, FAILED, EDITED or DELETED.
"""
from __future__ import annotations

import asyncio
import logging
from datetime import timedelta
from typing import Awaitable, Callable, Optional

from adapters.messaging_gateway import MessagingGateway
from models.outbound_task import OutboundTask, TaskAction, TaskStatus
from shared import time
from shared.loops import every
from store.outbound_task_store import OutboundTaskStore
from store.patient_message_store import PatientMessageStore

logger = logging.getLogger(__name__)

NO_CONTENT = "No content"
NO_TARGET_CHAT = "No target chat"
NO_TARGET_MESSAGE = "No target message"
SEND_FAILED = "Failed to send message"


async def attempt_with_fallback(
    label: str,
    primary: Callable[[], Awaitable],
    fallback: Callable[[], Awaitable],
    task_id: str = "",
):
    """
    One graceful-degradation step: try primary, on any error try fallback once.
    Returns the fallback's result, or None when both raised.
    """
    try:
        return await primary()
    except Exception as e:
        logger.warning("[OUTBOUND] %s failed for task %s (%s); trying fallback", label, task_id, e)
    try:
        return await fallback()
    except Exception:
        logger.exception("[OUTBOUND] %s fallback failed for task %s", label, task_id)
        return None


async def send_text_with_fallback(
    gateway: MessagingGateway, chat_id: str, text: str, reply_to: Optional[int] = None, task_id: str = ""
) -> Optional[int]:
    return await attempt_with_fallback(
        "send_text",
        lambda: gateway.send_text(chat_id, text, markdown=True, reply_to=reply_to),
        lambda: gateway.send_text(chat_id, text, markdown=False, reply_to=reply_to),
        task_id,
    )


class OutboundWorker:
    def __init__(
        self,
        gateway: MessagingGateway,
        task_store: OutboundTaskStore,
        message_store: PatientMessageStore,
        stale_after: Optional[timedelta] = None,
    ):
        self.gateway = gateway
        self.tasks = task_store
        self.messages = message_store
        self.stale_after = stale_after

    # --- Cycle ----------------------------------------------------------------

    async def run_cycle(self) -> int:
        """Drain the PENDING tasks visible right now. Returns how many were dispatched."""
        if self.stale_after:
            self.tasks.reclaim_stale(self.stale_after)
        self.tasks.promote_due_scheduled()

        pending = self.tasks.list_pending()
        if not pending:
            return 0
        logger.info("[OUTBOUND] %d pending task(s)", len(pending))

        now = time.utcnow()
        processed = 0
        for task in pending:
            due = time.parse_iso_utc(task.scheduled_for)
            if due is not None and due > now:
                continue
            if not self.tasks.claim(task.task_id):
                continue
            await self.process(task)
            processed += 1
        return processed

    async def process(self, task: OutboundTask) -> TaskStatus:
        """Dispatch a claimed task and write its terminal status."""
        try:
            if not task.target_chat_id:
                return self._fail(task, NO_TARGET_CHAT)
            if task.action == TaskAction.DELETE:
                return await self._delete(task)
            if task.action == TaskAction.EDIT:
                return await self._edit(task)
            return await self._send(task)
        except Exception as e:
            logger.exception("[OUTBOUND] Task %s crashed", task.task_id)
            return self._fail(task, str(e) or type(e).__name__)

    # --- Actions --------------------------------------------------------------

    async def _delete(self, task: OutboundTask) -> TaskStatus:
        if task.target_message_id:
            try:
                await self.gateway.delete_message(task.target_chat_id, task.target_message_id)
            except Exception as e:
                # already deleted or too old; the task is still done
                logger.warning("[OUTBOUND] Delete of %s in %s ignored: %s", task.target_message_id, task.target_chat_id, e)
        self.tasks.mark_status(task.task_id, TaskStatus.DELETED)
        logger.info("[OUTBOUND] Task %s DELETED", task.task_id)
        return TaskStatus.DELETED

    async def _edit(self, task: OutboundTask) -> TaskStatus:
        if not task.target_message_id:
            return self._fail(task, NO_TARGET_MESSAGE)
        text = task.text or ""
        try:
            await self.gateway.edit_text(task.target_chat_id, task.target_message_id, text)
        except Exception as e:
            logger.info("[OUTBOUND] edit_text failed for task %s (%s); editing caption", task.task_id, e)
            try:
                await self.gateway.edit_caption(task.target_chat_id, task.target_message_id, text)
            except Exception:
                logger.exception("[OUTBOUND] edit_caption failed for task %s", task.task_id)
        self.tasks.mark_status(task.task_id, TaskStatus.EDITED)
        logger.info("[OUTBOUND] Task %s EDITED", task.task_id)
        return TaskStatus.EDITED

    async def _send(self, task: OutboundTask) -> TaskStatus:
        if not task.has_content():
            return self._fail(task, NO_CONTENT)

        chat_id = task.target_chat_id
        reply_to = task.reply_to_message_id
        text = task.text or ""

        if task.image_url:
            message_id = await attempt_with_fallback(
                "send_photo",
                lambda: self.gateway.send_photo(chat_id, task.image_url, text, markdown=True, reply_to=reply_to),
                lambda: self.gateway.send_photo(chat_id, task.image_url, text, markdown=False, reply_to=reply_to),
                task.task_id,
            )
        elif task.voice_url:
            message_id = await attempt_with_fallback(
                "send_voice",
                lambda: self.gateway.send_voice(chat_id, task.voice_url, text, reply_to=reply_to),
                lambda: self.gateway.send_voice(chat_id, task.voice_url, None, reply_to=reply_to),
                task.task_id,
            )
        else:
            message_id = await send_text_with_fallback(self.gateway, chat_id, text, reply_to, task.task_id)

        if message_id is None:
            return self._fail(task, SEND_FAILED)

        self.tasks.mark_delivered(task.task_id, message_id, time.utcnow_iso())
        logger.info("[OUTBOUND] Task %s delivered as message %s", task.task_id, message_id)
        self._link_back(task, message_id)
        return TaskStatus.DELIVERED

    # --- Side effects ---------------------------------------------------------

    def _link_back(self, task: OutboundTask, message_id: int) -> bool:
        """Mirror delivery into the transcript. Never undoes the task's delivered status."""
        if not (task.patient_id and task.original_message_id):
            return False
        try:
            self.messages.link_delivery(task.patient_id, task.original_message_id, message_id)
            return True
        except Exception:
            logger.exception(
                "[OUTBOUND] Link-back failed for task %s (patient=%s message=%s)",
                task.task_id, task.patient_id, task.original_message_id,
            )
            return False

    def _fail(self, task: OutboundTask, error: str) -> TaskStatus:
        logger.warning("[OUTBOUND] Task %s FAILED: %s", task.task_id, error)
        try:
            self.tasks.mark_failed(task.task_id, error)
        except Exception:
            logger.exception("[OUTBOUND] Could not record failure for task %s", task.task_id)
        return TaskStatus.FAILED


async def outbound_loop(worker: OutboundWorker, stop_event: asyncio.Event, interval: float) -> None:
    """Runs worker.run_cycle every interval seconds until stop_event is set."""
    await every(stop_event, interval, worker.run_cycle, "outbound_worker")
