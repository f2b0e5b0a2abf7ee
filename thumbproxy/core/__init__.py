# thumbproxy/core/__init__.py
"""
Core thumbnail pipeline -- transport-agnostic.

This package contains the domain models, the container sniffer, the
contain-fit calculator, the resource guards, the capability protocols
(ports), and the orchestrator (ThumbnailPipeline).

Canonical imports:
    from thumbproxy.core import ThumbnailPipeline
    from thumbproxy.core.domain import Outcome, OutcomeStatus
    from thumbproxy.core.ports import ImageCodec
"""
from thumbproxy.core.domain import (  # noqa: F401
    Outcome,
    OutcomeStatus,
    ContainerClassification,
    TargetGeometry,
)
from thumbproxy.core.pipeline import ThumbnailPipeline  # noqa: F401
