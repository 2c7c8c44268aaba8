"""
Leaderboard Pipeline - API Fetcher Module

This module fetches raw leaderboard payloads from affiliate APIs.

Why this module exists:
----------------------
Every affiliate platform exposes its referral leaderboard differently:
1. Endpoints move or are undocumented, so several candidate URLs are tried
2. API keys go in different headers (x-api-key, Bearer, Token) or the query
3. Date ranges are expected under different parameter names

Rather than one hand-written fetcher per platform, a single SourceAdapter is
driven by a per-source SourceConfig.

Usage:
------
    from leaderboard_pipeline.api_fetcher import SourceAdapter, load_source_configs

    for config in load_source_configs():
        result = SourceAdapter(config).fetch_payload()
        result.url, result.payload

Configuration:
--------------
Sources live in sources_config.yaml (or a file passed explicitly). These
environment variables are read:

    <auth.api_key_env>          - API key per source (e.g. CSGOLD_API_KEY)
    ${VAR} inside URLs          - e.g. DEJEN_RACE_ID
    LEADERBOARD_TIMEOUT_SEC     - Request timeout override (default: 15)
"""

# -----------------------------------------------------------------------------
# Base client
# -----------------------------------------------------------------------------
from .client_base import (
    BaseAPIClient,
    APIClientError,
    APIClientHTTPError,
    APIClientTimeout,
)

# -----------------------------------------------------------------------------
# Canonical schema (shared by the normalizer and snapshot writer)
# -----------------------------------------------------------------------------
from .schema import (
    SCHEMA_VERSION,
    CanonicalRow,
    NormalizedLeaderboard,
    PrizeEntry,
    PrizePolicy,
    Snapshot,
    SnapshotMetadata,
    WagerUnits,
)

# -----------------------------------------------------------------------------
# Per-source configuration
# -----------------------------------------------------------------------------
from .source_config import (
    SourceConfig,
    SourceConfigError,
    compute_date_range,
    load_source_configs,
    parse_source_configs,
)

# -----------------------------------------------------------------------------
# Generic source adapter
# -----------------------------------------------------------------------------
from .source_adapter import FetchResult, SourceAdapter, SourceFetchError


__all__ = [
    # Base client
    "BaseAPIClient",
    "APIClientError",
    "APIClientHTTPError",
    "APIClientTimeout",
    # Schema
    "SCHEMA_VERSION",
    "CanonicalRow",
    "NormalizedLeaderboard",
    "PrizeEntry",
    "PrizePolicy",
    "Snapshot",
    "SnapshotMetadata",
    "WagerUnits",
    # Config
    "SourceConfig",
    "SourceConfigError",
    "compute_date_range",
    "load_source_configs",
    "parse_source_configs",
    # Adapter
    "FetchResult",
    "SourceAdapter",
    "SourceFetchError",
]
