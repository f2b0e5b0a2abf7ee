# thumbproxy/infra/upstream_fetcher.py
"""
Origin image download with size enforcement.

One GET per request and no retries. The whole request runs under a
single deadline, so a failed download is surfaced immediately.

Size limits are applied twice:
- Content-Length, as soon as the headers arrive (body is never read)
- the real byte count, while the body streams (origins may omit or lie
  about Content-Length)
"""
from __future__ import annotations

from typing import Callable

import aiohttp

from thumbproxy.core.domain import OriginDescriptor, RawPayload
from thumbproxy.core.errors import UpstreamError
from thumbproxy.core.guards import (
    check_actual_size,
    check_declared_size,
    parse_content_length,
)
from thumbproxy.infra.http_client import get_origin_session
from thumbproxy.infra.logging_config import get_logger

logger = get_logger(__name__)

_DOWNLOAD_CHUNK_SIZE = 64 * 1024


class UpstreamFetcher:
    """
    Downloads origin images into memory, bounded by ``max_bytes``.

    Connections go back to the pool when the ``async with`` block exits,
    including when the calling task is cancelled by the request deadline.
    """

    def __init__(
        self,
        max_bytes: int,
        session_factory: Callable[[], aiohttp.ClientSession] = get_origin_session,
    ):
        self.max_bytes = max_bytes
        self._session_factory = session_factory

    async def fetch(self, descriptor: OriginDescriptor) -> RawPayload:
        session = self._session_factory()

        try:
            async with session.get(descriptor.url) as response:
                if not 200 <= response.status < 300:
                    logger.warning(
                        f"Origin returned HTTP {response.status} for {descriptor.identifier}"
                    )
                    raise UpstreamError("upstream error", upstream_status=response.status)

                declared = parse_content_length(response.headers.get("Content-Length"))
                check_declared_size(declared, self.max_bytes)

                chunks = []
                total_size = 0
                async for chunk in response.content.iter_chunked(_DOWNLOAD_CHUNK_SIZE):
                    total_size += len(chunk)
                    check_actual_size(total_size, self.max_bytes)
                    chunks.append(chunk)

        except aiohttp.ClientError as e:
            logger.warning(f"Origin request failed for {descriptor.identifier}: {e}")
            raise UpstreamError(f"upstream error: {e.__class__.__name__}") from e

        data = b"".join(chunks)
        logger.debug(
            f"Origin download complete: {len(data)} bytes "
            f"(Content-Length={declared if declared is not None else 'absent'})"
        )
        return RawPayload(data=data, declared_length=declared)
