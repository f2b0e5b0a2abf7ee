# thumbproxy/transport/responses.py
"""
Outcome -> HTTP response mapping.

| Outcome              | Status      | content-type | cache-control         |
|----------------------|-------------|--------------|-----------------------|
| OK                   | 200         | image/webp   | long-lived, immutable |
| DELEGATED            | passthrough | image/webp   | short / no-cache      |
| BAD_REQUEST          | 400         | text/plain   | -                     |
| UPSTREAM_ERROR       | 502         | text/plain   | -                     |
| TOO_LARGE            | 413         | text/plain   | -                     |
| DIMENSIONS_TOO_LARGE | 413         | text/plain   | -                     |
| TIMEOUT              | 408         | text/plain   | -                     |
| INTERNAL_ERROR       | 500         | text/plain   | -                     |
"""
from __future__ import annotations

from fastapi.responses import PlainTextResponse, Response

from thumbproxy.core.domain import Outcome, OutcomeStatus

STATUS_CODES = {
    OutcomeStatus.OK: 200,
    OutcomeStatus.BAD_REQUEST: 400,
    OutcomeStatus.UPSTREAM_ERROR: 502,
    OutcomeStatus.TOO_LARGE: 413,
    OutcomeStatus.DIMENSIONS_TOO_LARGE: 413,
    OutcomeStatus.TIMEOUT: 408,
    OutcomeStatus.INTERNAL_ERROR: 500,
}

FAILURE_BODIES = {
    OutcomeStatus.BAD_REQUEST: "Invalid image ID",
    OutcomeStatus.UPSTREAM_ERROR: "upstream error",
    OutcomeStatus.TOO_LARGE: "Image too large",
    OutcomeStatus.DIMENSIONS_TOO_LARGE: "Image dimensions too large",
    OutcomeStatus.TIMEOUT: "Request processing timeout",
}


class ResponseBuilder:
    def __init__(self, immutable_cache_control: str, delegated_cache_control: str):
        self.immutable_cache_control = immutable_cache_control
        self.delegated_cache_control = delegated_cache_control

    def build(self, outcome: Outcome) -> Response:
        if outcome.status == OutcomeStatus.OK:
            return Response(
                content=outcome.body,
                status_code=STATUS_CODES[OutcomeStatus.OK],
                media_type=outcome.content_type,
                headers={"cache-control": self.immutable_cache_control},
            )

        if outcome.status == OutcomeStatus.DELEGATED:
            return Response(
                content=outcome.body,
                status_code=outcome.status_code or 200,
                media_type=outcome.content_type,
                headers={"cache-control": self.delegated_cache_control},
            )

        return PlainTextResponse(
            content=self.failure_body(outcome),
            status_code=STATUS_CODES[outcome.status],
        )

    @staticmethod
    def failure_body(outcome: Outcome) -> str:
        if outcome.status == OutcomeStatus.INTERNAL_ERROR:
            # Surfaced verbatim for diagnosability
            return f"Processing error: {outcome.message}"
        return FAILURE_BODIES[outcome.status]
