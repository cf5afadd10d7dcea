"""Scoring weight normalization and per-user config resolution.

Admin defaults are used as stored. A user's own weights only replace them
after normalization to a sum of 1, so an override can't scale every score.
"""

import logging
from typing import Any

from reelscout.discovery.types import DiscoveryConfig
from reelscout.models.media import MediaType

logger = logging.getLogger(__name__)

WEIGHT_FIELDS = ("similarity_weight", "novelty_weight", "popularity_weight", "recency_weight")

# User settings are stored with the web UI's camelCase keys
_USER_KEYS = {
    "similarityWeight": "similarity_weight",
    "noveltyWeight": "novelty_weight",
    "ratingWeight": "popularity_weight",
    "popularityWeight": "popularity_weight",
    "recencyWeight": "recency_weight",
    "diversityWeight": "diversity_weight",
}


def normalize_weights(
    raw: dict[str, float], defaults: dict[str, float] | None = None
) -> dict[str, float]:
    """Scale non-negative weights to sum to 1.

    Falls back to `defaults` (themselves normalized) when the weights sum to
    zero. Relative order is preserved.
    """
    for name, value in raw.items():
        if value < 0:
            raise ValueError(f"Weight {name} must be non-negative, got {value}")

    total = sum(raw.values())
    if total <= 0:
        if defaults is None:
            defaults = {name: getattr(DiscoveryConfig(), name) for name in WEIGHT_FIELDS}
        return normalize_weights(defaults)
    return {name: value / total for name, value in raw.items()}


def user_overrides(user_settings: dict[str, Any] | None, media_type: MediaType) -> dict[str, Any]:
    """Weight overrides the user enabled for a media type ({} when none).

    Expected shape: {"algorithmSettings": {"enabled": true, "movie": {...}, "series": {...}}}
    """
    algorithm = (user_settings or {}).get("algorithmSettings") or {}
    if not algorithm.get("enabled"):
        return {}
    section = algorithm.get(media_type.value) or {}
    return {
        _USER_KEYS[key]: float(value)
        for key, value in section.items()
        if key in _USER_KEYS and value is not None
    }


def get_effective_config(
    admin: DiscoveryConfig,
    user_settings: dict[str, Any] | None,
    media_type: MediaType,
) -> DiscoveryConfig:
    """Admin config with the user's normalized weights applied, if any."""
    overrides = user_overrides(user_settings, media_type)
    if not overrides:
        return admin

    raw = {name: overrides.get(name, getattr(admin, name)) for name in WEIGHT_FIELDS}
    defaults = {name: getattr(admin, name) for name in WEIGHT_FIELDS}
    update: dict[str, float] = normalize_weights(raw, defaults)
    if "diversity_weight" in overrides:
        update["diversity_weight"] = max(0.0, min(1.0, overrides["diversity_weight"]))

    logger.debug(f"Using user weight overrides for {media_type.value}: {update}")
    return DiscoveryConfig.model_validate({**admin.model_dump(), **update})
