from typing import Optional

from telegram import Message

from context.message.raw_message import InboundKind, InboundMessage
from context.primitives.media import MediaInfo
from context.primitives.replies_info import ReplyContextInfo

DELETE_COMMAND = "/del"


def _media_of(message: Message) -> Optional[MediaInfo]:
    if message.photo:
        # last size is the largest
        photo = message.photo[-1]
        return MediaInfo(kind="photo", file_id=photo.file_id, mime_type="image/jpeg", extension="jpg")
    if message.voice:
        voice = message.voice
        return MediaInfo(kind="voice", file_id=voice.file_id, mime_type=voice.mime_type or "audio/ogg", extension="ogg")
    return None


def _reply_of(message: Message) -> Optional[ReplyContextInfo]:
    quoted = message.reply_to_message
    if quoted is None:
        return None
    return ReplyContextInfo(
        quoted_message_id=quoted.message_id,
        quoted_text=quoted.text or quoted.caption,
    )


def is_delete_command(message: Message) -> bool:
    text = (message.text or "").strip()
    if not text:
        return False
    command = text.split()[0].split("@")[0].lower()
    return command == DELETE_COMMAND


def to_inbound(message: Message, edited: bool = False) -> InboundMessage:
    if edited:
        kind = InboundKind.EDITED
    elif is_delete_command(message):
        kind = InboundKind.DELETE_COMMAND
    else:
        kind = InboundKind.NEW

    return InboundMessage(
        kind=kind,
        chat_id=str(message.chat_id),
        message_id=message.message_id,
        text=message.text if message.text is not None else message.caption,
        media=_media_of(message),
        reply=_reply_of(message),
    )
