import asyncio
import hmac
import logging
from contextlib import asynccontextmanager, suppress
from datetime import timedelta
from typing import Optional

from fastapi import FastAPI, Header, HTTPException, Query, Request
from fastapi.responses import JSONResponse, Response
from telegram import Update
from telegram.ext import Application

from adapters.telegram.bot_api_adapter import TelegramBotAdapter
from adapters.telegram.handlers import DAY_OFFSETS, BotHandlers
from db.base import get_db
from shared.config import (
    ADMIN_CHAT_IDS,
    CLEANUP_TIME,
    DEFAULT_LANGUAGE,
    OPS_TOKEN,
    OUTBOUND_POLL_SECONDS,
    REMINDER_TIMES,
    STALE_PROCESSING_MINUTES,
    TELEGRAM_WEBHOOK_SECRET,
    TELEGRAM_WEBHOOK_URL,
    telegram_bot_token,
)
from shared.inbound_sync import InboundSync
from shared.instance_guard import InstanceGuard
from shared.loops import daily_at
from shared.media_rehost import MediaRehoster
from shared.outbound_worker import OutboundWorker, outbound_loop
from shared.reminders import ReminderSweep
from shared.verification import PatientVerification
from store.bot_session_store import BotSessionStore
from store.outbound_task_store import OutboundTaskStore
from store.patient_message_store import PatientMessageStore
from store.patient_store import PatientStore

logger = logging.getLogger(__name__)
logging.basicConfig(level=logging.INFO)


async def cleanup_job(task_store: OutboundTaskStore) -> int:
    removed = task_store.cleanup_terminal()
    logger.info("[TASKS] Cleanup removed %d finished task(s)", removed)
    return removed


def build_telegram_app(db) -> Application:
    tg_app = Application.builder().token(telegram_bot_token()).build()
    gateway = TelegramBotAdapter(tg_app.bot)

    task_store = OutboundTaskStore(db)
    patient_store = PatientStore(db)
    message_store = PatientMessageStore(db)

    stale_after = timedelta(minutes=STALE_PROCESSING_MINUTES) if STALE_PROCESSING_MINUTES > 0 else None
    reminders = ReminderSweep(gateway, patient_store, DEFAULT_LANGUAGE)
    sync = InboundSync(gateway, patient_store, message_store, MediaRehoster(gateway), DEFAULT_LANGUAGE)
    verification = PatientVerification(patient_store, BotSessionStore(db), DEFAULT_LANGUAGE)

    BotHandlers(verification, sync, reminders, task_store, ADMIN_CHAT_IDS).register(tg_app)

    tg_app.bot_data["task_store"] = task_store
    tg_app.bot_data["reminders"] = reminders
    tg_app.bot_data["worker"] = OutboundWorker(gateway, task_store, message_store, stale_after)
    return tg_app


async def start_intake(tg_app: Application) -> None:
    await tg_app.initialize()
    await tg_app.start()
    if TELEGRAM_WEBHOOK_URL:
        await tg_app.bot.set_webhook(url=TELEGRAM_WEBHOOK_URL, secret_token=TELEGRAM_WEBHOOK_SECRET or None)
        logger.info("Telegram webhook set to %s", TELEGRAM_WEBHOOK_URL)
    else:
        await tg_app.bot.delete_webhook()
        await tg_app.updater.start_polling()
        logger.info("Telegram long polling started")


async def stop_intake(tg_app: Application) -> None:
    if tg_app.updater and tg_app.updater.running:
        await tg_app.updater.stop()
    if tg_app.running:
        await tg_app.stop()
    await tg_app.shutdown()


@asynccontextmanager
async def lifespan(app: FastAPI):
    guard = InstanceGuard()
    guard.acquire()

    stop_event = asyncio.Event()
    try:
        tg_app = build_telegram_app(get_db())
        await start_intake(tg_app)
    except Exception:
        guard.release()
        raise
    task_store = tg_app.bot_data["task_store"]
    reminders = tg_app.bot_data["reminders"]

    app.state.telegram_app = tg_app
    app.state.task_store = task_store
    app.state.reminders = reminders

    tasks = [
        asyncio.create_task(
            outbound_loop(tg_app.bot_data["worker"], stop_event, OUTBOUND_POLL_SECONDS), name="outbound_worker"
        ),
    ]
    for hour, minute, offset in REMINDER_TIMES:
        name = f"reminders_{hour:02d}{minute:02d}"
        tasks.append(asyncio.create_task(
            daily_at(stop_event, hour, minute, lambda offset=offset: reminders.run(offset), name), name=name
        ))
    cleanup_hour, _, cleanup_minute = CLEANUP_TIME.partition(":")
    tasks.append(asyncio.create_task(
        daily_at(stop_event, int(cleanup_hour), int(cleanup_minute or 0), lambda: cleanup_job(task_store), "cleanup"),
        name="cleanup",
    ))

    try:
        yield
    finally:
        # Cooperative shutdown
        stop_event.set()
        try:
            await asyncio.wait_for(asyncio.gather(*tasks, return_exceptions=True), timeout=2.0)
        except asyncio.TimeoutError:
            # Fallback: force-cancel any stragglers
            for t in tasks:
                if not t.done():
                    t.cancel()
            for t in tasks:
                with suppress(asyncio.CancelledError):
                    await t
        try:
            await stop_intake(tg_app)
        finally:
            guard.release()


app = FastAPI(lifespan=lifespan)


def require_ops_token(token: Optional[str]) -> None:
    if not OPS_TOKEN:
        raise HTTPException(status_code=403, detail="Ops endpoints disabled")
    if not hmac.compare_digest(OPS_TOKEN, token or ""):
        logger.warning("Ops token check failed.")
        raise HTTPException(status_code=401, detail="Invalid ops token")


@app.get("/")
def health_check():
    return JSONResponse(content={"status": "ok"}, status_code=200)

@app.head("/")
def head_root():
    return Response(status_code=200)

@app.post("/telegram/webhook")
async def telegram_webhook(
    request: Request,
    x_telegram_bot_api_secret_token: str = Header(default=None),
):
    if TELEGRAM_WEBHOOK_SECRET and not hmac.compare_digest(
        TELEGRAM_WEBHOOK_SECRET, x_telegram_bot_api_secret_token or ""
    ):
        logger.warning("Telegram webhook secret mismatch.")
        raise HTTPException(status_code=403, detail="Invalid secret")

    try:
        raw_data = await request.json()
    except Exception:
        logger.exception("Failed to parse JSON body")
        return Response(status_code=200)

    tg_app: Application = request.app.state.telegram_app
    update = Update.de_json(raw_data, tg_app.bot)
    await tg_app.process_update(update)
    return Response(status_code=200)

@app.post("/ops/reminders")
async def ops_reminders(
    request: Request,
    day: str = Query("tomorrow"),
    x_ops_token: str = Header(default=None),
):
    require_ops_token(x_ops_token)
    offset = DAY_OFFSETS.get(day.lower())
    if offset is None:
        raise HTTPException(status_code=400, detail="day must be today or tomorrow")
    run = await request.app.state.reminders.run(offset)
    return {"day": run.day, "matched": run.matched, "sent": run.sent}

@app.post("/ops/cleanup")
async def ops_cleanup(request: Request, x_ops_token: str = Header(default=None)):
    require_ops_token(x_ops_token)
    removed = await cleanup_job(request.app.state.task_store)
    return {"removed": removed}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
