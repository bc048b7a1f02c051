from __future__ import annotations

from typing import Any, Dict, Optional

import aiohttp

from .config import Config, logger
from .http import build_headers, fetch_json, make_session, post_form
from .models import ActivitySnapshot

LOGIN_PATH = "/Account/Login"
ACTIVITY_PATH = "/NewGame/ListActivityV2"


class StarRealmsClient:
    """Session-holding client for the Star Realms activity API.

    One instance is shared by the poll loop and every command handler. Calls
    carry no per-caller state, so no extra locking is needed around them.
    """

    def __init__(self, username: str, password: str, base_url: str | None = None,
                 session: Optional[aiohttp.ClientSession] = None, timeout_secs: float | None = None):
        self.username = username
        self._password = password
        self.base_url = (base_url or Config.SR_API_URL).rstrip("/")
        self._session = session
        self.timeout_secs = Config.HTTP_TIMEOUT_SECS if timeout_secs is None else timeout_secs
        self._token: Optional[str] = None

    @property
    def session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = make_session(self.timeout_secs)
        return self._session

    @property
    def authenticated(self) -> bool:
        return self._token is not None

    async def login(self) -> None:
        data = await post_form(
            self.session,
            f"{self.base_url}{LOGIN_PATH}",
            {"username": self.username, "password": self._password},
        )
        token = _extract_token(data)
        if not token:
            raise PermissionError(f"Login for {self.username} returned no session token")
        self._token = token
        logger.info(f"✅ Authenticated to Star Realms as {self.username}")

    async def activity(self) -> ActivitySnapshot:
        if not self._token:
            raise PermissionError("Not logged in to Star Realms")
        data = await fetch_json(
            self.session,
            f"{self.base_url}{ACTIVITY_PATH}",
            headers=build_headers(self._token),
        )
        snapshot = ActivitySnapshot.from_payload(data, self.username)
        logger.debug(
            f"Activity: {len(snapshot.active_games)} active, "
            f"{len(snapshot.challenges)} challenges, {len(snapshot.finished_games)} finished"
        )
        return snapshot

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()


def _extract_token(data: Any) -> Optional[str]:
    if not isinstance(data, dict):
        return None
    result: Dict[str, Any] = data.get("result") if isinstance(data.get("result"), dict) else data
    token = result.get("token")
    return str(token) if token else None
