"""
Leaderboard Pipeline - Normalization Module

Turns semi-structured affiliate payloads into canonical leaderboard rows.

Usage:
------
    from leaderboard_pipeline.normalization import PrizeLadder, normalize

    ladder = PrizeLadder.from_amounts([105, 65, 40, 25, 15])
    result = normalize(payload, ladder)
    result.rows    # sorted CanonicalRow list
    result.prizes  # resolved PrizeEntry list
"""

from .coercion import coerce_number, coerce_string
from .extractors import (
    extract_period,
    extract_prize,
    extract_rank,
    extract_username,
    extract_wagered,
)
from .locator import locate
from .normalizer import NormalizeOptions, effective_ladder, normalize, pad_rows
from .prize_ladder import PrizeLadder, as_ladder, parse_prize_tiers


__all__ = [
    "coerce_number",
    "coerce_string",
    "extract_period",
    "extract_prize",
    "extract_rank",
    "extract_username",
    "extract_wagered",
    "locate",
    "NormalizeOptions",
    "effective_ladder",
    "normalize",
    "pad_rows",
    "PrizeLadder",
    "as_ladder",
    "parse_prize_tiers",
]
