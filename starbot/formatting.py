from __future__ import annotations

from typing import Iterable, List, Optional

from .models import ActivityChanges, ChallengeRecord, ClientData, FinishedGameRecord, GameRecord


def _escape_html(text: str) -> str:
    return text.replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")


def _auth(value: Optional[int]) -> str:
    return "?" if value is None else str(value)


def fmt_turn(game: GameRecord) -> str:
    owner = game.which_turn()
    other = game.other_player(owner)
    cd = game.client_data
    return (
        f"🎲 <b>{_escape_html(owner)}</b> ({_auth(cd.auth_for(owner))}) to act in game "
        f"<code>{game.id}</code> vs {_escape_html(other)} ({_auth(cd.auth_for(other))})"
    )


def fmt_challenge(chal: ChallengeRecord) -> str:
    return (
        f"🚀 <b>{_escape_html(chal.challenger_name)}</b> is challenging "
        f"<b>{_escape_html(chal.opponent_name)}</b> to a game of Star Realms!"
    )


def fmt_challenge_listing(chal: ChallengeRecord) -> str:
    return f"⚔️ Challenge from <b>{_escape_html(chal.challenger_name)}</b> to <b>{_escape_html(chal.opponent_name)}</b>"


def _fmt_side(cd: ClientData, side: int) -> str:
    name, auth = (cd.p1_name, cd.p1_auth) if side == 1 else (cd.p2_name, cd.p2_auth)
    return f"<b>{_escape_html(name or '—')}</b> at {_auth(auth)}"


def fmt_finished(game: FinishedGameRecord) -> str:
    cd = game.client_data
    return f"🏁 Game <code>{game.id}</code> finished: {_fmt_side(cd, 1)} vs {_fmt_side(cd, 2)}"


def fmt_changes(changes: ActivityChanges) -> List[str]:
    """One message per change: turns, then challenges, then finished games."""
    messages = [fmt_turn(game) for game in changes.turns.values()]
    messages += [fmt_challenge(chal) for chal in changes.challenges]
    messages += [fmt_finished(game) for game in changes.finished]
    return messages


def fmt_challenge_list(challenges: Iterable[ChallengeRecord]) -> List[str]:
    lines = [fmt_challenge_listing(chal) for chal in challenges]
    return lines or ["📭 No open challenges."]


def fmt_version(version: str) -> str:
    return f"🤖 Starbot {version}"


def fmt_help(prefix: str) -> str:
    return (
        "🤖 <b>Starbot</b>\n\n"
        f"{prefix}turns - Turns and challenges new since the last check\n"
        f"{prefix}chal - List every open challenge\n"
        f"{prefix}version - Show the bot version"
    )
