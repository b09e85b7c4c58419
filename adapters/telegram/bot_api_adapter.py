from typing import Optional

from telegram import Bot, ReplyParameters
from telegram.constants import ParseMode

from adapters.messaging_gateway import MessagingGateway


def _reply(reply_to: Optional[int]) -> Optional[ReplyParameters]:
    if not reply_to:
        return None
    # the original may be gone; still deliver the message
    return ReplyParameters(message_id=int(reply_to), allow_sending_without_reply=True)


class TelegramBotAdapter(MessagingGateway):
    def __init__(self, bot: Bot):
        self.bot = bot

    async def send_text(self, chat_id, text, markdown=True, reply_to=None) -> int:
        msg = await self.bot.send_message(
            chat_id=chat_id,
            text=text,
            parse_mode=ParseMode.MARKDOWN if markdown else None,
            reply_parameters=_reply(reply_to),
        )
        return msg.message_id

    async def send_photo(self, chat_id, url, caption=None, markdown=True, reply_to=None) -> int:
        msg = await self.bot.send_photo(
            chat_id=chat_id,
            photo=url,
            caption=caption or None,
            parse_mode=ParseMode.MARKDOWN if (markdown and caption) else None,
            reply_parameters=_reply(reply_to),
        )
        return msg.message_id

    async def send_voice(self, chat_id, url, caption=None, reply_to=None) -> int:
        msg = await self.bot.send_voice(
            chat_id=chat_id,
            voice=url,
            caption=caption or None,
            reply_parameters=_reply(reply_to),
        )
        return msg.message_id

    async def edit_text(self, chat_id, message_id, text, markdown=True) -> None:
        await self.bot.edit_message_text(
            text=text,
            chat_id=chat_id,
            message_id=int(message_id),
            parse_mode=ParseMode.MARKDOWN if markdown else None,
        )

    async def edit_caption(self, chat_id, message_id, caption, markdown=True) -> None:
        await self.bot.edit_message_caption(
            chat_id=chat_id,
            message_id=int(message_id),
            caption=caption,
            parse_mode=ParseMode.MARKDOWN if markdown else None,
        )

    async def delete_message(self, chat_id, message_id) -> None:
        await self.bot.delete_message(chat_id=chat_id, message_id=int(message_id))

    async def fetch_file_url(self, file_id: str) -> str:
        tg_file = await self.bot.get_file(file_id)
        # file_path is an absolute https URL and expires after about an hour
        return tg_file.file_path

    async def download_file(self, file_id: str) -> bytes:
        tg_file = await self.bot.get_file(file_id)
        data = await tg_file.download_as_bytearray()
        return bytes(data)
