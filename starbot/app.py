from __future__ import annotations

import asyncio

import aiohttp
from telegram import BotCommand
from telegram.ext import Application, CommandHandler, MessageHandler, filters
from telegram.request import HTTPXRequest

from .api import StarRealmsClient
from .config import Config, logger
from .state import ChangeTracker
from .watchers import PollLoop
from .commands import (
    start_cmd,
    turns_cmd,
    chal_cmd,
    version_cmd,
    text_cmd,
)

BOT_COMMANDS = [
    BotCommand("start", "Show help and available commands"),
    BotCommand("turns", "Turns and challenges new since the last check"),
    BotCommand("chal", "List every open challenge"),
    BotCommand("version", "Show the bot version"),
]


class StartupError(RuntimeError):
    """Login or priming failed; the bot must not start polling."""


async def startup(client: StarRealmsClient, tracker: ChangeTracker) -> None:
    """Log in and prime the tracker so existing activity is not announced.

    Any failure here is fatal: the bot refuses to start rather than flood the
    channel or poll with a dead session.
    """
    logger.info("🏥 Logging in to Star Realms...")
    try:
        await client.login()
        snapshot = await client.activity()
    except PermissionError as e:
        logger.error(f"❌ Star Realms authentication failed: {e}")
        raise StartupError("❌ Star Realms authentication failed. Check SR_USERNAME/SR_PASSWORD.") from e
    except (aiohttp.ClientError, asyncio.TimeoutError, RuntimeError, ValueError) as e:
        logger.error(f"❌ Star Realms startup fetch failed: {e}")
        raise StartupError(f"❌ Could not reach Star Realms: {e}") from e
    await tracker.prime(snapshot)


def make_notifier(application: Application, channel_id: int):
    async def notify(text: str) -> None:
        await application.bot.send_message(channel_id, text, parse_mode="HTML")
    return notify


async def post_init(application: Application) -> None:
    """Log in, prime, then start the poll loop once.

    Startup failures are stored in ``bot_data["startup_error"]`` and the
    application is asked to stop; ``main`` turns that into a failed exit.
    """
    client = application.bot_data.get("client")
    if client is None:
        client = StarRealmsClient(Config.SR_USERNAME, Config.SR_PASSWORD, Config.get_api_base_url())
        application.bot_data["client"] = client
    tracker = application.bot_data.get("tracker")
    if tracker is None:
        tracker = ChangeTracker()
        application.bot_data["tracker"] = tracker

    if not tracker.primed:
        try:
            await startup(client, tracker)
        except StartupError as e:
            application.bot_data["startup_error"] = str(e)
            application.stop_running()
            return

    try:
        logger.info("🔧 Setting up bot commands...")
        await application.bot.set_my_commands(BOT_COMMANDS)
        logger.info("✅ Bot commands configured successfully")
    except Exception as e:
        logger.error(f"❌ Failed to set bot commands: {e}")
        logger.warning("⚠️ Bot will continue but commands may not be visible in Telegram")

    poll_loop = application.bot_data.get("poll_loop")
    if poll_loop is None:
        poll_loop = PollLoop(tracker, client.activity, make_notifier(application, Config.CHANNEL_ID))
        application.bot_data["poll_loop"] = poll_loop
    if poll_loop.start():
        logger.info(f"✅ Announcing to chat {Config.CHANNEL_ID}")


async def post_stop(application: Application) -> None:
    poll_loop = application.bot_data.get("poll_loop")
    if poll_loop is not None:
        await poll_loop.stop()


async def post_shutdown(application: Application) -> None:
    client = application.bot_data.get("client")
    if client is not None:
        await client.close()


def build_application() -> Application:
    # Configure request with longer timeout to prevent startup failures
    request = HTTPXRequest(
        connection_pool_size=8,
        connect_timeout=30.0,
        read_timeout=30.0,
        write_timeout=30.0,
        pool_timeout=30.0,
    )

    app = (
        Application.builder()
        .token(Config.BOT_TOKEN)
        .request(request)
        .concurrent_updates(True)
        .post_init(post_init)
        .post_stop(post_stop)
        .post_shutdown(post_shutdown)
        .build()
    )

    app.add_handler(CommandHandler("start", start_cmd))
    app.add_handler(CommandHandler("help", start_cmd))
    app.add_handler(CommandHandler("turns", turns_cmd))
    app.add_handler(CommandHandler("chal", chal_cmd))
    app.add_handler(CommandHandler("version", version_cmd))
    app.add_handler(MessageHandler(filters.TEXT & ~filters.COMMAND, text_cmd))
    return app


def main():
    try:
        Config.validate_config()
    except ValueError as e:
        raise SystemExit(f"❌ {e}. Check your .env file.")

    app = build_application()
    app.run_polling(drop_pending_updates=True)

    startup_error = app.bot_data.get("startup_error")
    if startup_error:
        raise SystemExit(startup_error)
