import asyncio
import logging
import os
from logging.handlers import RotatingFileHandler
from pathlib import Path

from aiogram import Bot
from aiogram.client.default import DefaultBotProperties
from aiogram.enums import ParseMode
from aiohttp import web

from config import settings
from services import AdminAlertHandler
from services.scheduler import build_scheduler
from services.storage import Database
from web import build_services, create_app

# ensure logs are recorded both to stdout and to a rotating file
def configure_logging() -> None:
    log_dir = Path(os.getenv("LOG_DIR", "logs"))
    if not log_dir.is_absolute():
        log_dir = Path.cwd() / log_dir
    log_dir.mkdir(parents=True, exist_ok=True)

    log_file = log_dir / "luna.log"

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
        handlers=[
            logging.StreamHandler(),
            RotatingFileHandler(
                log_file,
                maxBytes=5 * 1024 * 1024,
                backupCount=3,
                encoding="utf-8",
            ),
        ],
        force=True,
    )
    logging.getLogger("aiohttp.access").setLevel(logging.WARNING)


configure_logging()
logger = logging.getLogger("luna")


async def main() -> None:
    settings.validate()

    database = Database(settings.DB_PATH)
    if not database.configured:
        logger.warning("DB_PATH is empty: reads return no data and analyses cannot be saved")

    alert_bot = None
    if settings.alerts_enabled:
        alert_bot = Bot(
            token=settings.ALERT_BOT_TOKEN,
            default=DefaultBotProperties(parse_mode=ParseMode.HTML),
        )
        logging.getLogger().addHandler(
            AdminAlertHandler(alert_bot, settings.ADMIN_CHAT_IDS, loop=asyncio.get_running_loop())
        )

    services = build_services(database, settings, alert_bot=alert_bot)
    app = create_app(services)

    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, settings.HOST, settings.PORT)
    await site.start()

    scheduler = build_scheduler(services.sweeper, settings.SWEEP_HOUR_UTC)
    if scheduler is not None:
        scheduler.start()
        logger.info("Daily sweep scheduled at %02d:00 UTC", settings.SWEEP_HOUR_UTC)
    else:
        logger.info("In-process sweep disabled; relying on /cron-sweep triggers")

    logger.info(
        "Luna Analytics listening on http://%s:%s (screenshots: %s provider)",
        settings.HOST,
        settings.PORT,
        settings.SCREENSHOT_PROVIDER,
    )

    try:
        await asyncio.Event().wait()
    finally:
        if scheduler is not None:
            scheduler.shutdown(wait=False)
        await runner.cleanup()
        if alert_bot is not None:
            await alert_bot.session.close()


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Server stopped by user")
    except Exception:
        logger.exception("Fatal error")
