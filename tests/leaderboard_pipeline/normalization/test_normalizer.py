import json

import pytest

from leaderboard_pipeline.api_fetcher.schema import PrizePolicy, WagerUnits
from leaderboard_pipeline.normalization import (
    NormalizeOptions,
    PrizeLadder,
    normalize,
)


def _rows(result):
    return [row.model_dump() for row in result.rows]


# =====================================================================
# Core behaviour
# =====================================================================

@pytest.mark.unit
def test_end_to_end_users_payload():
    """
    Given a payload where only the first entry has a rank
    When normalizing with ladder {1: 100, 2: 50}
    Then the second entry takes its rank from array position
    """
    payload = {
        "users": [
            {"rank": 1, "username": "Alice", "wager": 500},
            {"username": "Bob", "wager": 300},
        ]
    }
    result = normalize(payload, {1: 100, 2: 50})

    assert _rows(result) == [
        {"rank": 1, "username": "Alice", "wagered": 500.0, "prize": 100.0},
        {"rank": 2, "username": "Bob", "wagered": 300.0, "prize": 50.0},
    ]
    assert [(p.rank, p.amount) for p in result.prizes] == [(1, 100.0), (2, 50.0)]
    assert result.total_entries == 2


@pytest.mark.unit
def test_normalize_is_deterministic():
    payload = {
        "data": {
            "leaderboard": [
                {"position": 3, "name": "c", "amount": "10"},
                {"position": 1, "name": "a", "amount": "30"},
                {"position": 2, "name": "b", "amount": "20"},
            ]
        }
    }
    ladder = PrizeLadder.from_amounts([50, 25, 10])

    first = json.dumps(normalize(payload, ladder).model_dump(), sort_keys=True)
    second = json.dumps(normalize(payload, ladder).model_dump(), sort_keys=True)
    assert first == second


@pytest.mark.unit
def test_ranks_fall_back_to_array_order():
    payload = [{"username": f"u{i}", "wagered": 100 - i} for i in range(5)]
    result = normalize(payload)
    assert [row.rank for row in result.rows] == [1, 2, 3, 4, 5]
    assert [row.username for row in result.rows] == ["u0", "u1", "u2", "u3", "u4"]


@pytest.mark.unit
def test_rows_sorted_by_rank_strictly_increasing():
    payload = {"rows": [{"rank": 4, "name": "d"}, {"rank": 2, "name": "b"}, {"rank": 9, "name": "z"}]}
    ranks = [row.rank for row in normalize(payload).rows]
    assert ranks == [2, 4, 9]
    assert all(a < b for a, b in zip(ranks, ranks[1:]))


@pytest.mark.unit
def test_missing_username_gets_player_placeholder():
    payload = {"entries": [{"rank": 1, "wagered": 10}, {"rank": 2, "user": {"id": 5}}]}
    usernames = [row.username for row in normalize(payload).rows]
    assert usernames == ["Player 1", "Player 2"]


@pytest.mark.unit
def test_empty_payload_returns_ladder():
    ladder = PrizeLadder.from_amounts({1: 100, 2: 65})
    result = normalize({}, ladder)
    assert result.rows == []
    assert result.prizes == ladder.entries()
    assert result.total_entries == 0


@pytest.mark.unit
def test_non_object_entries_are_skipped_but_keep_position():
    payload = {"leaderboard": [{"username": "a"}, "junk", {"username": "c"}]}
    result = normalize(payload)
    assert [(row.rank, row.username) for row in result.rows] == [(1, "a"), (3, "c")]


# =====================================================================
# Prize resolution
# =====================================================================

@pytest.mark.unit
def test_entry_prize_overrides_ladder():
    payload = {"leaderboard": [{"rank": 1, "username": "a", "prize": 250}]}
    result = normalize(payload, {1: 100})
    assert result.rows[0].prize == 250.0
    assert [(p.rank, p.amount) for p in result.prizes] == [(1, 250.0)]


@pytest.mark.unit
def test_ladder_used_when_entry_has_no_prize():
    payload = {"leaderboard": [{"rank": 2, "username": "b"}]}
    assert normalize(payload, {2: 65}).rows[0].prize == 65.0


@pytest.mark.unit
def test_zero_entry_prize_does_not_override_ladder():
    payload = {"leaderboard": [{"rank": 1, "username": "a", "prize": 0}]}
    assert normalize(payload, {1: 100}).rows[0].prize == 100.0


@pytest.mark.unit
def test_untrusted_entry_prizes_are_ignored():
    payload = {"leaderboard": [{"rank": 1, "username": "a", "prize": 250}]}
    options = NormalizeOptions(trust_entry_prizes=False)
    assert normalize(payload, {1: 100}, options).rows[0].prize == 100.0


@pytest.mark.unit
def test_rank_beyond_ladder_gets_zero_prize():
    payload = {"leaderboard": [{"rank": 11, "username": "k"}]}
    assert normalize(payload, [10] * 10).rows[0].prize == 0.0


@pytest.mark.unit
def test_merge_policy_layers_payload_tiers_over_ladder():
    payload = {
        "prizes": [{"rank": 1, "amount": 500}],
        "leaderboard": [{"rank": 1, "username": "a"}, {"rank": 2, "username": "b"}],
    }
    ladder = {1: 100, 2: 50}

    merged = normalize(payload, ladder, NormalizeOptions(prize_policy=PrizePolicy.MERGE))
    assert [row.prize for row in merged.rows] == [500.0, 50.0]

    static = normalize(payload, ladder, NormalizeOptions(prize_policy=PrizePolicy.LADDER))
    assert [row.prize for row in static.rows] == [100.0, 50.0]


# =====================================================================
# Source-specific policies
# =====================================================================

@pytest.mark.unit
def test_duplicate_ranks_keep_first_in_array_order():
    payload = {
        "leaderboard": [
            {"username": "first"},
            {"rank": 1, "username": "second"},
            {"rank": 2, "username": "third"},
        ]
    }
    result = normalize(payload)
    assert [(row.rank, row.username) for row in result.rows] == [(1, "first"), (2, "third")]


@pytest.mark.unit
def test_cents_units():
    payload = {"leaderboard": [{"username": "a", "wagered": 123456}]}
    result = normalize(payload, options=NormalizeOptions(units=WagerUnits.CENTS))
    assert result.rows[0].wagered == 1234.56


@pytest.mark.unit
def test_rerank_by_wagered():
    payload = {
        "affiliates": [
            {"username": "low", "wagered_amount": "10"},
            {"username": "high", "wagered_amount": "900"},
            {"username": "mid", "wagered_amount": "50"},
        ]
    }
    result = normalize(payload, [30, 20, 10], NormalizeOptions(rerank_by_wagered=True))
    assert [(row.rank, row.username, row.prize) for row in result.rows] == [
        (1, "high", 30.0),
        (2, "mid", 20.0),
        (3, "low", 10.0),
    ]


@pytest.mark.unit
def test_limit_truncates():
    payload = [{"rank": i, "username": f"u{i}"} for i in range(1, 16)]
    result = normalize(payload, options=NormalizeOptions(limit=10))
    assert len(result.rows) == 10
    assert result.rows[-1].rank == 10
    assert result.total_entries == 15


@pytest.mark.unit
def test_pad_to_appends_placeholders():
    payload = {"leaderboard": [{"rank": 1, "username": "a", "wagered": 5}]}
    options = NormalizeOptions(pad_to=3, placeholder_username="No User")
    result = normalize(payload, [100, 50, 25], options)

    assert [(row.rank, row.username, row.wagered, row.prize) for row in result.rows] == [
        (1, "a", 5.0, 100.0),
        (2, "No User", 0.0, 50.0),
        (3, "No User", 0.0, 25.0),
    ]


@pytest.mark.unit
def test_pad_to_default_placeholder_name():
    options = NormalizeOptions(pad_to=2)
    result = normalize({"leaderboard": []}, None, options)
    assert [row.username for row in result.rows] == ["Player 1", "Player 2"]


@pytest.mark.unit
def test_pad_to_fills_rank_gaps():
    """
    Given ranks 1 and 5 for a top-10 source
    When padding to 10
    Then ranks 2-4 and 6-10 are placeholders and nothing goes past rank 10
    """
    payload = {"leaderboard": [{"rank": 1, "username": "a"}, {"rank": 5, "username": "e"}]}
    options = NormalizeOptions(limit=10, pad_to=10, placeholder_username="No User")
    result = normalize(payload, [100] * 10, options)

    assert [row.rank for row in result.rows] == list(range(1, 11))
    assert result.rows[0].username == "a"
    assert result.rows[4].username == "e"
    assert {row.username for row in result.rows[1:4]} == {"No User"}
    assert all(row.prize == 100.0 for row in result.rows)


@pytest.mark.unit
def test_pad_to_with_limit_keeps_exactly_n_slots():
    entries = [{"rank": 1, "username": "first", "prize": 500}]
    entries += [{"rank": r, "username": f"u{r}", "prize": 1} for r in range(5, 15)]
    options = NormalizeOptions(limit=10, pad_to=10)
    result = normalize({"leaderboard": entries}, [100] * 10, options)

    assert [row.rank for row in result.rows] == list(range(1, 11))
    assert [row.username for row in result.rows[1:4]] == ["Player 2", "Player 3", "Player 4"]
    # prize overrides of rows pushed past the limit are gone
    assert max(p.rank for p in result.prizes) == 10
