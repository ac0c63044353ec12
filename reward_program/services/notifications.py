"""Best-effort outbound notifications.

Work handed to ``dispatch`` runs once on a process-wide APScheduler
BackgroundScheduler, off the request path. A failing job is logged and
dropped; it never reaches the caller that scheduled it.
"""
import logging
import threading
from datetime import datetime, timezone

from apscheduler.schedulers.background import BackgroundScheduler

from reward_program.services.otp_channel import OtpChannel
from reward_program.services.phone import mask_mobile

logger = logging.getLogger("uvicorn.error")

_scheduler: BackgroundScheduler | None = None
_lock = threading.Lock()


def get_scheduler() -> BackgroundScheduler:
    global _scheduler
    with _lock:
        if _scheduler is None:
            _scheduler = BackgroundScheduler(timezone="UTC")
        if not _scheduler.running:
            _scheduler.start()
        return _scheduler


def shutdown_scheduler() -> None:
    global _scheduler
    with _lock:
        if _scheduler is not None and _scheduler.running:
            _scheduler.shutdown(wait=False)
        _scheduler = None


def _run_quietly(func, *args) -> None:
    try:
        func(*args)
    except Exception:
        logger.exception("Outbound notification %s failed", getattr(func, "__name__", func))


def dispatch(func, *args) -> None:
    """Run func(*args) once, as soon as possible, in the background."""
    try:
        get_scheduler().add_job(_run_quietly, "date", run_date=datetime.now(timezone.utc), args=[func, *args])
    except Exception:
        logger.exception("Could not schedule outbound notification %s", getattr(func, "__name__", func))


def welcome_message(name: str, shop_code: str | None = None) -> str:
    body = f"Welcome {name}! Your account has been approved."
    if shop_code:
        body += f" Your shop code is {shop_code}. Share it with your sellers so they can register under your shop."
    return body


def send_welcome_message(channel: OtpChannel, mobile_number: str, name: str, shop_code: str | None = None) -> None:
    channel.send_message(mobile_number, welcome_message(name, shop_code))
    logger.info("Welcome message sent to %s", mask_mobile(mobile_number))
