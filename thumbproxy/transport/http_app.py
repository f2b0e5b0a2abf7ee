# thumbproxy/transport/http_app.py
"""
HTTP surface of the thumbnail proxy.

Routes:
- GET /health        liveness check
- GET /metrics       in-process counters and histograms (JSON)
- GET /{identifier}  thumbnail for the origin image ``identifier``

The thumbnail route is registered last so it never shadows the fixed paths.
"""
from __future__ import annotations

from contextlib import asynccontextmanager
from fastapi import FastAPI, HTTPException, Request, Depends
from fastapi.responses import Response
from fastapi.middleware.cors import CORSMiddleware

from thumbproxy.config import settings
from thumbproxy.core.pipeline import ThumbnailPipeline
from thumbproxy.infra.codec import get_codec
from thumbproxy.infra.edge_transform import build_animated_transformer
from thumbproxy.infra.http_client import close_all_sessions
from thumbproxy.infra.logging_config import setup_logging, get_logger
from thumbproxy.infra.metrics import get_metrics_collector
from thumbproxy.infra.upstream_fetcher import UpstreamFetcher
from thumbproxy.transport.middleware import (
    RequestIDMiddleware,
    RequestLoggingMiddleware,
    ErrorHandlingMiddleware,
    SecurityHeadersMiddleware,
)
from thumbproxy.transport.responses import ResponseBuilder

# Initialize logging first
setup_logging(
    level=settings.log_level,
    use_json=settings.is_production
)

logger = get_logger(__name__)


# ============================================================================
# DEPENDENCIES
# ============================================================================

def get_pipeline(request: Request) -> ThumbnailPipeline:
    """Get pipeline from app state"""
    return request.app.state.pipeline


def get_response_builder(request: Request) -> ResponseBuilder:
    """Get response builder from app state"""
    return request.app.state.response_builder


def build_pipeline() -> ThumbnailPipeline:
    codec = get_codec(
        max_pixels=settings.decode_max_pixels,
        max_dimension=settings.max_dimension,
        max_decoded_bytes=settings.decode_max_animated_bytes,
    )
    return ThumbnailPipeline(
        settings=settings,
        fetcher=UpstreamFetcher(max_bytes=settings.max_image_bytes),
        codec=codec,
        animated=build_animated_transformer(settings, codec),
    )


# ============================================================================
# LIFESPAN
# ============================================================================

@asynccontextmanager
async def lifespan(fastapi_app: FastAPI):
    """Application lifecycle: startup and shutdown"""

    # STARTUP
    logger.info(
        f"Starting thumbnail proxy: env={settings.app_env}, origin={settings.origin_base_url}, "
        f"target={settings.target_size}px, animated_strategy={settings.animated_strategy}"
    )

    fastapi_app.state.pipeline = build_pipeline()
    fastapi_app.state.response_builder = ResponseBuilder(
        immutable_cache_control=settings.immutable_cache_control,
        delegated_cache_control=settings.delegated_cache_control,
    )

    yield

    # SHUTDOWN
    await close_all_sessions()
    logger.info("Thumbnail proxy stopped")


# ============================================================================
# CREATE APP
# ============================================================================

app = FastAPI(
    title="thumbproxy",
    description="Thumbnail proxy: fetch, sniff, resize and cache-friendly re-encode of origin images",
    version="1.0.0",
    lifespan=lifespan,
    docs_url=None if settings.is_production else "/docs",
    redoc_url=None,
    openapi_url=None if settings.is_production else "/openapi.json",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=False,
    allow_methods=["GET"],
    allow_headers=["*"],
)

app.add_middleware(ErrorHandlingMiddleware)
# Outside error handling so 500s carry the headers too
app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(RequestLoggingMiddleware, enabled=settings.enable_request_logging)
app.add_middleware(RequestIDMiddleware)


# ============================================================================
# PUBLIC ENDPOINTS
# ============================================================================

@app.get("/health")
def health():
    """
    Basic health check - PUBLIC endpoint.
    Used by load balancers, monitoring, etc.
    """
    return {"status": "healthy"}


@app.get("/metrics")
def metrics():
    """Operational metrics (outcome counters, stage timings)."""
    if not settings.enable_metrics:
        raise HTTPException(status_code=404, detail="Not Found")
    return get_metrics_collector().get_metrics()


@app.get("/")
async def thumbnail_without_id(
    request: Request,
    pipeline: ThumbnailPipeline = Depends(get_pipeline),
    responses: ResponseBuilder = Depends(get_response_builder),
) -> Response:
    """No identifier: rejected by the pipeline like any other invalid ID."""
    request_id = getattr(request.state, "request_id", None)
    return responses.build(await pipeline.run("", request_id=request_id))


@app.get("/{identifier:path}")
async def thumbnail(
    identifier: str,
    request: Request,
    pipeline: ThumbnailPipeline = Depends(get_pipeline),
    responses: ResponseBuilder = Depends(get_response_builder),
) -> Response:
    """Thumbnail for one origin image. Errors come back as short text/plain bodies."""
    request_id = getattr(request.state, "request_id", None)
    outcome = await pipeline.run(identifier, request_id=request_id)
    return responses.build(outcome)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "thumbproxy.transport.http_app:app",
        host="0.0.0.0",
        port=8080,
        reload=not settings.is_production,
        log_level=settings.log_level.lower(),
        access_log=not settings.is_production,  # Disable in prod (use middleware logging)
        server_header=False,  # Don't expose server version
        date_header=False,  # Don't expose server time
    )
