"""Discovery pipeline: fetch, filter, score, diversify, enrich and store."""

from reelscout.discovery.errors import (
    DiscoveryDisabledError,
    DiscoveryError,
    RunAlreadyFinalizedError,
    UserNotFoundError,
)
from reelscout.discovery.pipeline import DiscoveryPipeline
from reelscout.discovery.storage import DiscoveryStorage
from reelscout.discovery.types import (
    BatchResult,
    DiscoveryConfig,
    DiscoveryFilterOptions,
    DiscoveryPipelineResult,
    RawCandidate,
    ScoredCandidate,
)

__all__ = [
    "DiscoveryPipeline",
    "DiscoveryStorage",
    # Types
    "BatchResult",
    "DiscoveryConfig",
    "DiscoveryFilterOptions",
    "DiscoveryPipelineResult",
    "RawCandidate",
    "ScoredCandidate",
    # Errors
    "DiscoveryError",
    "DiscoveryDisabledError",
    "RunAlreadyFinalizedError",
    "UserNotFoundError",
]
