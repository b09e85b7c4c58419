"""
Runs ahead of every other handler and removes chat content that must never
reach the transcript: channel forwards, scam links and executable uploads.
"""
import logging
import re
from enum import Enum
from typing import Optional

from telegram import Message, MessageOriginChannel, MessageOriginChat, Update
from telegram.constants import ChatType
from telegram.ext import ApplicationHandlerStop, ContextTypes

from shared.texts import MALICIOUS_FILE_BLOCKED

logger = logging.getLogger(__name__)

SCAM_PATTERN = re.compile(
    r"(tonplay|free\s*spin|bonus\s*\d+|crypto\s*giveaway|bitcoin|usdt|invest|airdrop"
    r"|http.*telegram\.me|http.*t\.me|http.*whatsapp|click\s*here|virus)",
    re.IGNORECASE,
)
DANGEROUS_EXTENSIONS = re.compile(
    r"\.(exe|bat|cmd|vbs|vbe|js|jse|wsf|wsh|msc|scr|reg|pif|apk|dll|msi)$",
    re.IGNORECASE,
)


class BlockReason(str, Enum):
    FORWARDED_FROM_CHAT = "forwarded_from_chat"
    SCAM_TEXT = "scam_text"
    DANGEROUS_FILE = "dangerous_file"


def looks_like_scam(text: Optional[str]) -> bool:
    return bool(text) and SCAM_PATTERN.search(text) is not None


def is_dangerous_file(file_name: Optional[str]) -> bool:
    return bool(file_name) and DANGEROUS_EXTENSIONS.search(file_name) is not None


def block_reason(message: Message, edited: bool = False) -> Optional[BlockReason]:
    if not edited and isinstance(message.forward_origin, (MessageOriginChannel, MessageOriginChat)):
        return BlockReason.FORWARDED_FROM_CHAT
    if looks_like_scam((message.text or "") + (message.caption or "")):
        return BlockReason.SCAM_TEXT
    if message.document is not None and is_dangerous_file(message.document.file_name):
        return BlockReason.DANGEROUS_FILE
    return None


async def screen_message(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Deletes blocked content and stops later handler groups from seeing it."""
    user = update.effective_user
    message = update.effective_message
    if user is None or message is None:
        return

    reason = block_reason(message, edited=update.edited_message is not None)
    if reason is None:
        return

    logger.warning("[GUARD] Blocked %s from user %s in chat %s", reason.value, user.id, message.chat_id)
    try:
        await context.bot.delete_message(message.chat_id, message.message_id)
        if reason == BlockReason.SCAM_TEXT and message.chat.type != ChatType.PRIVATE:
            await context.bot.ban_chat_member(message.chat_id, user.id)
        if reason == BlockReason.DANGEROUS_FILE:
            await context.bot.send_message(message.chat_id, MALICIOUS_FILE_BLOCKED)
    except Exception as e:
        logger.warning("[GUARD] Cleanup after %s block failed: %s", reason.value, e)
    raise ApplicationHandlerStop
