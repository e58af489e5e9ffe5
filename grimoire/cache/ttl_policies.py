"""
TTL configuration by data category.
"""
from typing import Any, Dict, Optional, Tuple

from config.settings import Settings
from .core import DataCategory

SECOND_MS = 1000
MINUTE_MS = 60 * SECOND_MS
HOUR_MS = 60 * MINUTE_MS


# TTL Configuration by category (in milliseconds)
TTL_CONFIG: Dict[DataCategory, Dict[str, Any]] = {
    DataCategory.RACE_NAMES: {
        "fresh_ttl": 24 * HOUR_MS,   # 24 hours
        "stale_ttl": None,           # No stale classification
        "durable": True,             # Snapshot survives restarts
    },
    DataCategory.WIKI_REFERENCE: {
        "fresh_ttl": 5 * MINUTE_MS,  # 5 minutes
        "stale_ttl": None,
        "durable": False,
    },
    DataCategory.CLASS_FEATURES: {
        "fresh_ttl": 5 * MINUTE_MS,  # 5 minutes
        "stale_ttl": None,
        "durable": False,
    },
    DataCategory.CAMPAIGN_NOTES: {
        "fresh_ttl": 5 * MINUTE_MS,  # Expired after 5 minutes
        "stale_ttl": 2 * MINUTE_MS,  # Stale (refresh in background) after 2
        "durable": True,
    },
}

# Period of the background refresh while campaign notes are stale
STALE_REFRESH_INTERVAL_SECONDS = 60.0


# Settings fields that override each category's windows (in seconds)
SETTINGS_OVERRIDES: Dict[DataCategory, Dict[str, str]] = {
    DataCategory.RACE_NAMES: {"fresh_ttl": "races_cache_ttl_seconds"},
    DataCategory.WIKI_REFERENCE: {"fresh_ttl": "wiki_cache_ttl_seconds"},
    DataCategory.CLASS_FEATURES: {"fresh_ttl": "class_features_cache_ttl_seconds"},
    DataCategory.CAMPAIGN_NOTES: {
        "fresh_ttl": "campaign_notes_cache_ttl_seconds",
        "stale_ttl": "campaign_notes_stale_seconds",
    },
}


def get_ttl_for_category(
    category: DataCategory,
    settings: Optional[Settings] = None,
) -> Tuple[int, Optional[int]]:
    """
    Get TTL configuration for a data category.

    Args:
        category: The data category
        settings: Optional settings; fields left unset keep the TTL_CONFIG
            defaults

    Returns:
        (fresh_ttl_ms, stale_ttl_ms) - stale_ttl_ms is None where the
        category has no stale classification
    """
    ttls = dict(TTL_CONFIG[category])

    if settings is not None:
        for ttl_name, field_name in SETTINGS_OVERRIDES[category].items():
            seconds = getattr(settings, field_name)
            if seconds is not None:
                ttls[ttl_name] = seconds * SECOND_MS

    return ttls["fresh_ttl"], ttls["stale_ttl"]


def get_refresh_interval(settings: Optional[Settings] = None) -> float:
    """Period in seconds of the background refresh while notes are stale."""
    if settings is not None and settings.campaign_notes_refresh_interval_seconds is not None:
        return settings.campaign_notes_refresh_interval_seconds
    return STALE_REFRESH_INTERVAL_SECONDS


def is_durable(category: DataCategory) -> bool:
    """True if the category persists a snapshot to durable storage."""
    return TTL_CONFIG[category]["durable"]
