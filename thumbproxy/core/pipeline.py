# thumbproxy/core/pipeline.py
"""
Thumbnail pipeline orchestrator.

    VALIDATING -> FETCHING -> CLASSIFYING -> DECODING   -> RESIZING -> ENCODING -> RESPONDING
                                          \\-> DELEGATING ----------------------/
    any non-terminal state -> ABORTED

Every run reaches exactly one terminal state and yields exactly one
``Outcome``. Failures inside the stages are converted to outcomes where
they happen; the only thing that escapes the stage runner is the request
deadline, which cancels it and produces a TIMEOUT outcome instead.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass, replace

from thumbproxy.config import Settings
from thumbproxy.core.domain import (
    Animated,
    EncodedOutput,
    ImageKind,
    OriginDescriptor,
    Outcome,
    OutcomeStatus,
    PipelineState,
    RawPayload,
    RequestContext,
    TargetGeometry,
)
from thumbproxy.core.errors import ThumbnailError
from thumbproxy.core.geometry import contain
from thumbproxy.core.guards import check_dimensions, validate_identifier
from thumbproxy.core.origin import build_origin_descriptor
from thumbproxy.core.ports import AnimatedTransformer, ImageCodec, OriginFetcher
from thumbproxy.core.sniffer import classify
from thumbproxy.infra.logging_config import LogContext, get_logger
from thumbproxy.infra.metrics import ThumbnailMetrics

logger = get_logger(__name__)

OUTPUT_CONTENT_TYPE = "image/webp"
TIMEOUT_MESSAGE = "Request processing timeout"
_LOG_IDENTIFIER_MAX = 100


@dataclass
class PipelineRun:
    """Mutable bookkeeping for one request: where it is and how it ended."""
    context: RequestContext
    log: LogContext
    state: PipelineState = PipelineState.VALIDATING

    def enter(self, state: PipelineState) -> None:
        if self.state.is_terminal:
            raise RuntimeError(f"Pipeline already finished in state {self.state.value}")
        self.log.debug(f"{self.state.value} -> {state.value}")
        self.state = state

    def finish(self, outcome: Outcome) -> Outcome:
        self.enter(PipelineState.RESPONDING if outcome.status.is_success else PipelineState.ABORTED)
        return outcome

    def abort_on_deadline(self) -> Outcome:
        outcome = Outcome.failure(OutcomeStatus.TIMEOUT, TIMEOUT_MESSAGE)
        # The cancelled stage runner may already have settled
        if not self.state.is_terminal:
            self.enter(PipelineState.ABORTED)
        return outcome


class ThumbnailPipeline:
    """
    Turns an identifier into a thumbnail response outcome.

    Collaborators are injected so tests can swap any of them for fakes:
    ``fetcher`` downloads origin bytes, ``codec`` does pixel work for
    static images, ``animated`` handles animated images (edge delegate
    or local).
    """

    def __init__(
        self,
        settings: Settings,
        fetcher: OriginFetcher,
        codec: ImageCodec,
        animated: AnimatedTransformer,
    ):
        self.settings = settings
        self.fetcher = fetcher
        self.codec = codec
        self.animated = animated

    @property
    def target_box(self) -> TargetGeometry:
        return TargetGeometry(width=self.settings.target_size, height=self.settings.target_size)

    async def run(self, identifier: str, request_id: str | None = None) -> Outcome:
        """Process one request under the configured deadline."""
        context = RequestContext.start(identifier, self.settings.processing_timeout_seconds)
        run = PipelineRun(
            context=context,
            log=LogContext(
                logger,
                request_id=request_id,
                identifier=(identifier or "")[:_LOG_IDENTIFIER_MAX] or None,
            ),
        )

        try:
            outcome = await asyncio.wait_for(self._run_stages(run), timeout=context.remaining())
        except asyncio.TimeoutError:
            run.log.warning(
                f"Deadline of {self.settings.processing_timeout_seconds}s exceeded "
                f"while {run.state.value}"
            )
            outcome = run.abort_on_deadline()

        self._record(run, outcome)
        return outcome

    async def _run_stages(self, run: PipelineRun) -> Outcome:
        try:
            return run.finish(await self._process(run))
        except ThumbnailError as e:
            return run.finish(Outcome.failure(e.status, e.detail))
        except Exception as e:
            run.log.error(
                f"Unhandled error while {run.state.value}: {e.__class__.__name__}: {e}",
                exc_info=True,
            )
            return run.finish(Outcome.failure(OutcomeStatus.INTERNAL_ERROR, str(e) or e.__class__.__name__))

    async def _process(self, run: PipelineRun) -> Outcome:
        identifier = validate_identifier(
            run.context.identifier, self.settings.max_identifier_length
        )

        run.enter(PipelineState.FETCHING)
        descriptor = build_origin_descriptor(identifier, self.settings)
        with ThumbnailMetrics.track_stage("fetch"):
            payload = await self.fetcher.fetch(descriptor)
        descriptor = replace(descriptor, declared_length=payload.declared_length)
        ThumbnailMetrics.upstream_bytes(payload.size)

        run.enter(PipelineState.CLASSIFYING)
        classification = classify(payload.data)
        if not classification.is_well_formed:
            run.log.warning("Origin payload is not a well-formed WebP container")
        kind: ImageKind = classification.kind
        ThumbnailMetrics.classified("animated" if classification.is_animated else "static")

        if isinstance(kind, Animated):
            return await self._delegate(run, descriptor, payload)
        return await self._render_static(run, payload)

    async def _delegate(
        self,
        run: PipelineRun,
        descriptor: OriginDescriptor,
        payload: RawPayload,
    ) -> Outcome:
        run.enter(PipelineState.DELEGATING)
        with ThumbnailMetrics.track_stage("delegate"):
            result = await self.animated.transform(descriptor, payload, self.target_box)
        return Outcome.delegated(result, OUTPUT_CONTENT_TYPE)

    async def _render_static(self, run: PipelineRun, payload: RawPayload) -> Outcome:
        settings = self.settings

        run.enter(PipelineState.DECODING)
        with ThumbnailMetrics.track_stage("decode"):
            source = await self.codec.decode(payload.data)
        check_dimensions(source.width, source.height, settings.max_dimension)

        target = contain(source.width, source.height, settings.target_size, settings.target_size)

        run.enter(PipelineState.RESIZING)
        with ThumbnailMetrics.track_stage("resize"):
            resized = await self.codec.resize(source, target.width, target.height, settings.resize_method)

        run.enter(PipelineState.ENCODING)
        with ThumbnailMetrics.track_stage("encode"):
            data = await self.codec.encode(resized, settings.encode_quality, settings.encode_effort)

        run.log.debug(
            f"Static thumbnail {source.width}x{source.height} -> {target.width}x{target.height}, "
            f"{len(data)} bytes"
        )
        return Outcome.success(EncodedOutput(data=data, content_type=OUTPUT_CONTENT_TYPE))

    @staticmethod
    def _record(run: PipelineRun, outcome: Outcome) -> None:
        elapsed_ms = run.context.elapsed_ms()
        ThumbnailMetrics.outcome(outcome.status.value, elapsed_ms / 1000)

        extra = {"outcome": outcome.status.value, "duration_ms": elapsed_ms}
        if outcome.status.is_success:
            run.log.info(
                f"Thumbnail {outcome.status.value}: {len(outcome.body)} bytes in {elapsed_ms:.1f}ms",
                extra=extra,
            )
        elif outcome.status == OutcomeStatus.INTERNAL_ERROR:
            run.log.error(f"Thumbnail failed: {outcome.message}", extra=extra)
        else:
            run.log.warning(
                f"Thumbnail rejected ({outcome.status.value}): {outcome.message}",
                extra=extra,
            )
