# thumbproxy/infra/http_client.py
"""
Shared HTTP client sessions for the proxy.

One lazily-created aiohttp.ClientSession per upstream, so pooled
connections to the origin and to the edge transform are reused across
requests.

Session profiles
~~~~~~~~~~~~~~~~
- **origin**:    origin image downloads (total=30 s, connect=5 s, pool limit=50)
- **transform**: edge transform calls   (total=30 s, connect=5 s, pool limit=20)

The request deadline is enforced by the pipeline; these timeouts only
stop a single stuck connection from outliving it.

Shutdown
~~~~~~~~
Call ``close_all_sessions()`` once from the application lifespan.
"""
from __future__ import annotations

from dataclasses import dataclass

import aiohttp

from thumbproxy.infra.logging_config import get_logger

logger = get_logger(__name__)

USER_AGENT = "thumbproxy/1.0"


@dataclass(frozen=True)
class SessionProfile:
    total_timeout: float
    connect_timeout: float
    pool_limit: int


PROFILES = {
    "origin": SessionProfile(total_timeout=30, connect_timeout=5, pool_limit=50),
    "transform": SessionProfile(total_timeout=30, connect_timeout=5, pool_limit=20),
}

_sessions: dict[str, aiohttp.ClientSession] = {}


def _session_for(name: str) -> aiohttp.ClientSession:
    session = _sessions.get(name)
    if session is not None and not session.closed:
        return session

    profile = PROFILES[name]
    session = aiohttp.ClientSession(
        timeout=aiohttp.ClientTimeout(total=profile.total_timeout, connect=profile.connect_timeout),
        connector=aiohttp.TCPConnector(
            limit=profile.pool_limit,
            keepalive_timeout=30,
            enable_cleanup_closed=True,
        ),
        headers={"User-Agent": USER_AGENT},
    )
    _sessions[name] = session
    logger.debug("HTTP session '%s' created (limit=%d)", name, profile.pool_limit)
    return session


def get_origin_session() -> aiohttp.ClientSession:
    return _session_for("origin")


def get_transform_session() -> aiohttp.ClientSession:
    return _session_for("transform")


async def close_all_sessions() -> None:
    for name in list(_sessions):
        session = _sessions.pop(name)
        if not session.closed:
            await session.close()
            logger.debug("HTTP session '%s' closed", name)
