from __future__ import annotations

import logging
from typing import Iterable, Optional

from telegram import (
    InlineKeyboardButton,
    InlineKeyboardMarkup,
    KeyboardButton,
    ReplyKeyboardMarkup,
    ReplyKeyboardRemove,
    Update,
)
from telegram.constants import ParseMode
from telegram.error import BadRequest
from telegram.ext import Application, CallbackQueryHandler, CommandHandler, ContextTypes, MessageHandler, filters

from adapters.telegram.guard import screen_message
from adapters.telegram.updates import to_inbound
from shared.inbound_sync import InboundSync
from shared.reminders import ReminderSweep
from shared.texts import CHECK_BUTTONS, LANGUAGE_BUTTONS, LANGUAGES, NOT_OWN_CONTACT, SYSTEM_ERROR, TEXTS, t
from shared.verification import PatientVerification, VerifyOutcome
from store.outbound_task_store import OutboundTaskStore

logger = logging.getLogger(__name__)

LANG_CALLBACK_PREFIX = "lang_"
DAY_OFFSETS = {"today": 0, "tomorrow": 1}


def language_keyboard() -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup([
        [InlineKeyboardButton(LANGUAGE_BUTTONS[lang], callback_data=f"{LANG_CALLBACK_PREFIX}{lang}")]
        for lang in LANGUAGES
    ])


def contact_keyboard(lang: str) -> ReplyKeyboardMarkup:
    button = KeyboardButton(t(lang, "share_contact_btn"), request_contact=True)
    return ReplyKeyboardMarkup([[button]], resize_keyboard=True, one_time_keyboard=True)


def check_keyboard(lang: str) -> ReplyKeyboardMarkup:
    return ReplyKeyboardMarkup([[t(lang, "check_btn")]], resize_keyboard=True)


async def reply_markdown(message, text: str, **kwargs):
    """Names from the dashboard can carry stray _ or *; resend those as plain text."""
    try:
        return await message.reply_text(text, parse_mode=ParseMode.MARKDOWN, **kwargs)
    except BadRequest as e:
        logger.warning("[BOT] Markdown reply rejected (%s); resending as plain text", e)
    return await message.reply_text(text, **kwargs)


class BotHandlers:
    """Telegram update routing: verification, schedule lookups, transcript sync and operator commands."""

    def __init__(
        self,
        verification: PatientVerification,
        sync: InboundSync,
        reminders: ReminderSweep,
        task_store: OutboundTaskStore,
        admin_chat_ids: Iterable[str] = (),
    ):
        self.verification = verification
        self.sync = sync
        self.reminders = reminders
        self.tasks = task_store
        self.admin_chat_ids = {str(c) for c in admin_chat_ids}

    def register(self, application: Application) -> None:
        new_only = filters.UpdateType.MESSAGE

        application.add_handler(MessageHandler(filters.UpdateType.MESSAGES, screen_message), group=-1)
        application.add_handler(CommandHandler("start", self.on_start))
        application.add_handler(CallbackQueryHandler(self.on_language, pattern=f"^{LANG_CALLBACK_PREFIX}"))
        application.add_handler(MessageHandler(filters.CONTACT & new_only, self.on_contact))
        application.add_handler(MessageHandler(filters.Text(sorted(CHECK_BUTTONS)) & new_only, self.on_check_schedule))
        application.add_handler(CommandHandler("forcereminders", self.on_force_reminders))
        application.add_handler(CommandHandler("cleanup", self.on_cleanup))
        application.add_handler(CommandHandler("del", self.on_inbound, filters=new_only))
        application.add_handler(MessageHandler(filters.UpdateType.EDITED_MESSAGE & ~filters.COMMAND, self.on_edited))
        application.add_handler(
            MessageHandler(((filters.TEXT & ~filters.COMMAND) | filters.PHOTO | filters.VOICE) & new_only, self.on_inbound)
        )
        application.add_error_handler(self.on_error)

    def is_admin(self, chat_id) -> bool:
        return str(chat_id) in self.admin_chat_ids

    # --- Verification ---------------------------------------------------------

    async def on_start(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        welcome = "\n".join(TEXTS[lang]["welcome"] for lang in LANGUAGES)
        await update.effective_message.reply_text(welcome, reply_markup=language_keyboard())

    async def on_language(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        query = update.callback_query
        await query.answer()
        requested = (query.data or "")[len(LANG_CALLBACK_PREFIX):]
        lang = self.verification.choose_language(str(update.effective_chat.id), requested)
        await query.message.reply_text(t(lang, "ask_contact"), reply_markup=contact_keyboard(lang))

    async def on_contact(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        message = update.effective_message
        contact = message.contact
        chat_id = str(update.effective_chat.id)

        try:
            result = self.verification.verify_contact(
                chat_id, update.effective_user.id, contact.user_id, contact.phone_number
            )
        except Exception:
            logger.exception("[VERIFY] Verification failed for chat %s", chat_id)
            await message.reply_text(SYSTEM_ERROR)
            return

        lang = result.language
        if result.outcome == VerifyOutcome.NOT_OWN_CONTACT:
            await message.reply_text(NOT_OWN_CONTACT)
            return

        await message.reply_text(t(lang, "searching"), reply_markup=ReplyKeyboardRemove())
        if result.outcome == VerifyOutcome.NOT_FOUND:
            await message.reply_text(t(lang, "not_found"))
        elif result.outcome == VerifyOutcome.ALREADY_LINKED:
            await message.reply_text(t(lang, "already_linked"))
        else:
            await reply_markdown(
                message,
                t(lang, "success", name=result.patient.display_name()),
                reply_markup=check_keyboard(lang),
            )

    async def on_check_schedule(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        chat_id = str(update.effective_chat.id)
        try:
            text = self.verification.schedule_text(chat_id)
        except Exception:
            logger.exception("[VERIFY] Schedule lookup failed for chat %s", chat_id)
            await update.effective_message.reply_text(SYSTEM_ERROR)
            return
        await reply_markdown(update.effective_message, text)

    # --- Transcript sync ------------------------------------------------------

    async def on_inbound(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        await self.sync.handle(to_inbound(update.effective_message))

    async def on_edited(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        await self.sync.handle(to_inbound(update.edited_message, edited=True))

    # --- Operators ------------------------------------------------------------

    async def on_force_reminders(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        if not self.is_admin(update.effective_chat.id):
            return
        day = (context.args[0].lower() if context.args else "tomorrow")
        offset = DAY_OFFSETS.get(day)
        if offset is None:
            await update.effective_message.reply_text("Usage: /forcereminders [today|tomorrow]")
            return
        await update.effective_message.reply_text(f"⏳ Checking reminders due {day}...")
        run = await self.reminders.run(offset)
        await update.effective_message.reply_text(f"✅ {run.day}: matched {run.matched}, sent {run.sent}")

    async def on_cleanup(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        if not self.is_admin(update.effective_chat.id):
            return
        removed = self.tasks.cleanup_terminal()
        await update.effective_message.reply_text(f"🧹 Removed {removed} finished task(s)")

    async def on_error(self, update: Optional[object], context: ContextTypes.DEFAULT_TYPE) -> None:
        logger.error("Exception while handling an update: %s", context.error, exc_info=context.error)
