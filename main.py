"""
main.py — Single entry point.

Runs the aiohttp web server (JSON API + image proxy) and, when a token is
configured, the Telegram bot in the same asyncio event loop. No threads,
no subprocesses.

Architecture:
  asyncio event loop
    ├── aiohttp web server  (search, image proxy, CSV batch jobs)
    └── python-telegram-bot (polling)
         Only started when TELEGRAM_BOT_TOKEN is set.
"""
import asyncio
import logging
import signal
import sys

import config

# Log file lives in DATA_DIR so a single Docker volume mount captures it.
from pathlib import Path
_data_dir = Path(config.DATA_DIR)
_data_dir.mkdir(parents=True, exist_ok=True)

logging.basicConfig(
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    level=logging.INFO,
    handlers=[
        logging.StreamHandler(sys.stdout),
        logging.FileHandler(str(_data_dir / "photo_finder.log"), encoding="utf-8"),
    ],
)
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)
logging.getLogger("aiohttp.access").setLevel(logging.WARNING)

logger = logging.getLogger(__name__)


async def run() -> None:
    from web_server import start_web_server

    try:
        web_runner = await start_web_server()
    except OSError as exc:
        logger.critical("FATAL: web server failed to start: %s", exc, exc_info=True)
        raise

    stop_event = asyncio.Event()

    def _stop(*_):
        logger.info("Shutdown signal received.")
        stop_event.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _stop)
        except (NotImplementedError, RuntimeError):
            # Windows doesn't support add_signal_handler for all signals
            pass

    if config.TELEGRAM_BOT_TOKEN:
        from bot import build_application

        ptb_app = build_application()
        async with ptb_app:
            await ptb_app.start()
            await ptb_app.updater.start_polling(
                allowed_updates=["message"],
                drop_pending_updates=True,
            )
            logger.info("✅ Bot is running. Press Ctrl+C to stop.")

            await stop_event.wait()

            logger.info("Shutting down bot…")
            await ptb_app.updater.stop()
            await ptb_app.stop()
    else:
        logger.info("TELEGRAM_BOT_TOKEN not set, running web server only. Press Ctrl+C to stop.")
        await stop_event.wait()

    await web_runner.cleanup()
    logger.info("Web server stopped.")
    logger.info("Goodbye.")


def main() -> None:
    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
