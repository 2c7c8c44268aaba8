import json
from datetime import datetime, timezone
from unittest.mock import patch

import pytest

from leaderboard_pipeline import pipeline
from leaderboard_pipeline.api_fetcher.client_base import APIClientHTTPError
from leaderboard_pipeline.api_fetcher.source_adapter import SourceAdapter, SourceFetchError
from leaderboard_pipeline.api_fetcher.source_config import SourceConfig
from leaderboard_pipeline.snapshots.writer import SnapshotWriter


NOW = datetime(2025, 3, 10, tzinfo=timezone.utc)

GOOD_PAYLOAD = {
    "users": [
        {"rank": 1, "username": "Alice", "wager": 500},
        {"username": "Bob", "wager": 300},
    ]
}


def _config(name, **overrides):
    settings = {
        "name": name,
        "base_url": f"https://{name}.example.com",
        "candidates": ["/leaderboard"],
        "prize_ladder": [100, 50],
    }
    settings.update(overrides)
    return SourceConfig.model_validate(settings)


def _fake_request_json(self, method, url, params=None, json_body=None, headers=None):
    if "broken" in url:
        raise APIClientHTTPError("HTTP 502 returned from " + url, status_code=502)
    if "race" in url:
        return {"prizes": [{"rank": 1, "amount": 700}]}
    return GOOD_PAYLOAD


@pytest.fixture
def fake_http():
    with patch.object(SourceAdapter, "request_json", _fake_request_json):
        yield


def _read(path):
    with open(path, encoding="utf-8") as f:
        return json.load(f)


@pytest.mark.unit
@pytest.mark.asyncio
async def test_run_source_success_writes_snapshot(tmp_path, fake_http):
    writer = SnapshotWriter(tmp_path)
    result = await pipeline.run_source(_config("good"), writer, now=NOW, debug_raw=False)

    assert result.ok
    assert result.rows == 2
    assert result.url == "https://good.example.com/leaderboard"

    document = _read(result.output_file)
    assert [row["username"] for row in document["rows"]] == ["Alice", "Bob"]
    assert [row["prize"] for row in document["rows"]] == [100.0, 50.0]
    assert "error" not in document["metadata"]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_run_source_failure_writes_error_snapshot(tmp_path, fake_http):
    writer = SnapshotWriter(tmp_path)
    result = await pipeline.run_source(_config("broken", pad_to=3), writer, now=NOW, debug_raw=False)

    assert not result.ok
    assert result.rows == 0
    assert "SourceFetchError" in result.error

    document = _read(writer.path_for("broken"))
    assert document["metadata"]["error"].startswith("SourceFetchError")
    assert document["metadata"]["tried"] == ["https://broken.example.com/leaderboard"]
    assert [row["username"] for row in document["rows"]] == ["Player 1", "Player 2", "Player 3"]
    assert [p["amount"] for p in document["prizes"]] == [100.0, 50.0]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_run_source_missing_key_is_a_source_failure(tmp_path, monkeypatch):
    monkeypatch.delenv("GOOD_API_KEY", raising=False)
    writer = SnapshotWriter(tmp_path)
    config = _config("good", auth={"api_key_env": "GOOD_API_KEY"})

    result = await pipeline.run_source(config, writer, now=NOW, debug_raw=False)

    assert not result.ok
    assert "GOOD_API_KEY" in result.error
    assert _read(writer.path_for("good"))["rows"] == []


@pytest.mark.unit
@pytest.mark.asyncio
async def test_merge_policy_uses_prize_endpoint(tmp_path, fake_http):
    writer = SnapshotWriter(tmp_path)
    config = _config("good", prize_policy="merge", prizes_url="/race")

    result = await pipeline.run_source(config, writer, now=NOW, debug_raw=False)

    document = _read(result.output_file)
    assert [row["prize"] for row in document["rows"]] == [700.0, 50.0]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_debug_raw_dumps_payload(tmp_path, fake_http):
    writer = SnapshotWriter(tmp_path)
    await pipeline.run_source(_config("good"), writer, now=NOW, debug_raw=True)

    raw = _read(tmp_path / "_debug" / "good-raw.json")
    assert raw["payload"] == GOOD_PAYLOAD


@pytest.mark.unit
@pytest.mark.asyncio
async def test_run_all_isolates_failures(tmp_path, fake_http):
    """
    Given one healthy and one failing source
    When the batch runs
    Then both files exist and only the failing source reports an error
    """
    writer = SnapshotWriter(tmp_path)
    results = await pipeline.run_all(
        [_config("good"), _config("broken")], writer, now=NOW, debug_raw=False
    )

    by_name = {r.name: r for r in results}
    assert by_name["good"].ok
    assert not by_name["broken"].ok
    assert _read(writer.path_for("good"))["rows"]
    assert _read(writer.path_for("broken"))["metadata"]["error"]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_run_all_empty():
    assert await pipeline.run_all([], SnapshotWriter("unused")) == []


@pytest.mark.unit
def test_debug_fetch_enabled(monkeypatch):
    monkeypatch.setenv("LEADERBOARD_DEBUG_FETCH", "1")
    assert pipeline.debug_fetch_enabled()
    monkeypatch.setenv("LEADERBOARD_DEBUG_FETCH", "off")
    assert not pipeline.debug_fetch_enabled()


@pytest.mark.unit
def test_options_for_copies_source_policy():
    options = pipeline.options_for(_config("menace", units="cents", pad_to=10, limit=10))
    assert options.units.value == "cents"
    assert options.pad_to == 10
    assert options.limit == 10


@pytest.mark.unit
def test_source_fetch_error_is_reported_with_tried_urls():
    error = SourceFetchError("x", ["https://a", "https://b"], ["HTTP 500", "HTTP 502"])
    assert "All 2 candidate URL(s) failed for x: HTTP 500; HTTP 502" == str(error)


@pytest.mark.unit
@pytest.mark.asyncio
async def test_period_prefers_upstream_window(tmp_path, monkeypatch):
    """
    Given a source with a configured range whose race endpoint reports its own window
    When the snapshot is built
    Then metadata.period carries the upstream start/end
    """

    def fake_request_json(self, method, url, params=None, json_body=None, headers=None):
        if url.endswith("/race"):
            return {"start_time": "2025-03-02T00:00:00Z", "end_time": "2025-03-09T00:00:00Z"}
        return GOOD_PAYLOAD

    monkeypatch.setattr(SourceAdapter, "request_json", fake_request_json)
    writer = SnapshotWriter(tmp_path)
    config = _config(
        "good",
        prize_policy="merge",
        prizes_url="/race",
        date_range={"mode": "current_month"},
    )

    result = await pipeline.run_source(config, writer, now=NOW, debug_raw=False)

    period = _read(result.output_file)["metadata"]["period"]
    assert period == {"start": "2025-03-02T00:00:00Z", "end": "2025-03-09T00:00:00Z"}


@pytest.mark.unit
@pytest.mark.asyncio
async def test_period_falls_back_to_requested_range(tmp_path, fake_http):
    writer = SnapshotWriter(tmp_path)
    config = _config("good", date_range={"mode": "current_month"})

    result = await pipeline.run_source(config, writer, now=NOW, debug_raw=False)

    period = _read(result.output_file)["metadata"]["period"]
    assert period == {
        "start": "2025-03-01T00:00:00.000+00:00",
        "end": "2025-03-31T23:59:59.999+00:00",
    }


@pytest.mark.unit
@pytest.mark.asyncio
async def test_run_source_tries_next_candidate_when_first_has_no_rows(tmp_path, monkeypatch):
    def fake_request_json(self, method, url, params=None, json_body=None, headers=None):
        if url.endswith("/leaderboard"):
            return {"message": "race not started"}
        return GOOD_PAYLOAD

    monkeypatch.setattr(SourceAdapter, "request_json", fake_request_json)
    writer = SnapshotWriter(tmp_path)
    config = _config("good", candidates=["/leaderboard", "/standings"])

    result = await pipeline.run_source(config, writer, now=NOW, debug_raw=False)

    assert result.ok
    assert result.url == "https://good.example.com/standings"
    assert result.rows == 2
