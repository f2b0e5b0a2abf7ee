# thumbproxy/core/origin.py
from __future__ import annotations

from urllib.parse import quote, urlencode

from thumbproxy.config import Settings
from thumbproxy.core.domain import OriginDescriptor


def build_origin_url(identifier: str, settings: Settings) -> str:
    """<origin-base>/<identifier>.<ext>?size=<N>&animated=true"""
    base = settings.origin_base_url.rstrip("/")
    # The identifier is opaque: never let it add path segments or a query
    path = f"{quote(identifier, safe='')}.{settings.origin_extension}"
    query = urlencode({"size": settings.origin_request_size, "animated": "true"})
    return f"{base}/{path}?{query}"


def build_origin_descriptor(identifier: str, settings: Settings) -> OriginDescriptor:
    return OriginDescriptor(identifier=identifier, url=build_origin_url(identifier, settings))
