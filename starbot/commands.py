from __future__ import annotations

from typing import List, Optional

from telegram import Update
from telegram.ext import ContextTypes

from .config import Config, logger
from .formatting import fmt_challenge, fmt_challenge_list, fmt_help, fmt_turn, fmt_version
from .state import ChangeTracker
from .watchers import Fetch

COMMANDS = ("turns", "chal", "version", "help")

NOTHING_NEW_MSG = "💤 Nothing new since the last check."


def match_command(text: str, prefix: str | None = None, case_sensitive: bool | None = None) -> Optional[str]:
    """Return the command name ``text`` starts with, or None.

    Matching is a literal prefix test, so ``!challenges`` still counts as
    ``chal``. One case policy applies to every command.
    """
    if prefix is None:
        prefix = Config.COMMAND_PREFIX
    if case_sensitive is None:
        case_sensitive = Config.COMMANDS_CASE_SENSITIVE
    if not text:
        return None
    candidate = text.strip()
    if not case_sensitive:
        candidate = candidate.lower()
        prefix = prefix.lower()
    for name in COMMANDS:
        if candidate.startswith(f"{prefix}{name}"):
            return name
    return None


async def show_turns(tracker: ChangeTracker, fetch: Fetch) -> List[str]:
    """Report turns and challenges new since the last look; they are not reported again."""
    snapshot = await fetch()
    turns = await tracker.detect_turn_changes(snapshot)
    challenges = await tracker.detect_new_challenges(snapshot)
    lines = [fmt_turn(game) for game in turns.values()]
    lines += [fmt_challenge(chal) for chal in challenges]
    return lines or [NOTHING_NEW_MSG]


async def show_challenges(fetch: Fetch) -> List[str]:
    """List every open challenge; the tracker is left untouched."""
    snapshot = await fetch()
    return fmt_challenge_list(snapshot.challenges)


def show_version() -> List[str]:
    from . import __version__
    return [fmt_version(__version__)]


async def respond(name: str, tracker: ChangeTracker, fetch: Fetch) -> List[str]:
    """Produce the reply lines for a recognised command.

    Fetch failures are turned into a user-visible error line.
    """
    try:
        if name == "turns":
            return await show_turns(tracker, fetch)
        if name == "chal":
            return await show_challenges(fetch)
    except PermissionError as e:
        logger.warning(f"Command {name} failed: {e}")
        return [f"🔐 Star Realms rejected the request: {e}"]
    except Exception as e:
        logger.warning(f"Command {name} failed: {e}")
        return [f"❌ Could not reach Star Realms: {e}"]
    if name == "version":
        return show_version()
    return [fmt_help(Config.COMMAND_PREFIX)]


async def _reply(update: Update, lines: List[str]) -> None:
    if not update.effective_message:
        return
    try:
        await update.effective_message.reply_text("\n".join(lines), parse_mode="HTML")
    except Exception as e:
        logger.error(f"Failed to send reply: {e}")


async def _run(name: str, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    tracker: ChangeTracker = context.bot_data["tracker"]
    client = context.bot_data["client"]
    lines = await respond(name, tracker, client.activity)
    await _reply(update, lines)


async def text_cmd(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Dispatch prefixed text commands such as ``!turns``."""
    message = update.effective_message
    if not message or not message.text:
        return
    name = match_command(message.text)
    if name is None:
        return
    logger.debug(f"Text command {name} from chat {update.effective_chat.id if update.effective_chat else '?'}")
    await _run(name, update, context)


async def start_cmd(update: Update, context: ContextTypes.DEFAULT_TYPE):
    await _reply(update, [fmt_help(Config.COMMAND_PREFIX)])


async def turns_cmd(update: Update, context: ContextTypes.DEFAULT_TYPE):
    await _run("turns", update, context)


async def chal_cmd(update: Update, context: ContextTypes.DEFAULT_TYPE):
    await _run("chal", update, context)


async def version_cmd(update: Update, context: ContextTypes.DEFAULT_TYPE):
    await _reply(update, show_version())
