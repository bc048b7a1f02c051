from __future__ import annotations

import aiohttp
from typing import Any, Dict

from .config import Config, logger


def build_headers(token: str | None = None) -> Dict[str, str]:
    h = {
        "accept": "application/json, */*",
        "user-agent": "starbot/0.3",
        "pragma": "no-cache",
        "cache-control": "no-cache",
    }
    if token:
        h["authorization"] = f"Bearer {token}"
    return h


def make_session(timeout_secs: float | None = None) -> aiohttp.ClientSession:
    timeout = aiohttp.ClientTimeout(total=timeout_secs or Config.HTTP_TIMEOUT_SECS)
    return aiohttp.ClientSession(
        timeout=timeout,
        headers=build_headers(),
        trust_env=True,
    )


async def _read_json(r: aiohttp.ClientResponse, url: str) -> Any:
    if r.status in (401, 403):
        txt = await r.text()
        logger.warning(f"API auth failure for {url}: {r.status}")
        raise PermissionError(f"Auth failed ({r.status}). Body: {txt[:180]}")
    if r.status != 200:
        txt = await r.text()
        logger.error(f"API error for {url}: {r.status}")
        raise RuntimeError(f"HTTP {r.status} for {url} :: {txt[:300]}")
    logger.debug(f"API success: {url}")
    # The service does not always label its JSON responses correctly
    return await r.json(content_type=None)


async def fetch_json(
    session: aiohttp.ClientSession,
    url: str,
    params: Dict[str, str] | None = None,
    headers: Dict[str, str] | None = None,
) -> Any:
    logger.debug(f"API request: {url}")
    async with session.get(url, params=params, headers=headers) as r:
        return await _read_json(r, url)


async def post_form(
    session: aiohttp.ClientSession,
    url: str,
    data: Dict[str, str],
    headers: Dict[str, str] | None = None,
) -> Any:
    logger.debug(f"API request: POST {url}")
    async with session.post(url, data=data, headers=headers) as r:
        return await _read_json(r, url)
