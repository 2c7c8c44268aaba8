from __future__ import annotations

import asyncio
import dataclasses
import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from .client_base import BaseAPIClient, APIClientError
from .source_config import (
    AuthPlacement,
    DateParamStyle,
    DateRange,
    SourceConfig,
    SourceConfigError,
    compute_date_range,
    date_body,
    date_query_params,
    expand_env,
)


logger = logging.getLogger(__name__)


class SourceFetchError(RuntimeError):
    """Raised when every candidate endpoint of a source failed."""

    def __init__(self, source: str, tried: List[str], errors: List[str]) -> None:
        self.source = source
        self.tried = tried
        self.errors = errors
        detail = "; ".join(errors) if errors else "no candidates"
        super().__init__(f"All {len(tried)} candidate URL(s) failed for {source}: {detail}")


@dataclasses.dataclass
class FetchResult:
    url: str
    payload: Any
    date_range: Optional[DateRange] = None
    tried: List[str] = dataclasses.field(default_factory=list)


@dataclasses.dataclass
class PreparedRequest:
    method: str
    params: Dict[str, Any]
    json_body: Optional[Dict[str, Any]]
    date_range: Optional[DateRange]


class SourceAdapter(BaseAPIClient):
    """
    Generic fetcher for one affiliate source, driven entirely by its
    SourceConfig.

    Candidates are tried in order; a timeout, non-2xx response or invalid
    JSON moves on to the next one. Only when all of them fail does the
    source fail (SourceFetchError).

    `has_entries` decides whether a JSON answer actually carries a
    leaderboard. Answers without one are remembered but the next candidate
    is still tried; the first of them is returned if nothing better turns up.
    """

    def __init__(
        self,
        config: SourceConfig,
        has_entries: Optional[Callable[[Any], bool]] = None,
    ) -> None:
        self.config = config
        self.has_entries = has_entries
        self.api_key: Optional[str] = config.auth.resolve_key()

        if config.auth.api_key_env and config.auth.required and not self.api_key:
            raise SourceConfigError(
                f"{config.auth.api_key_env} must be set to fetch source '{config.name}'."
            )

        default_headers = dict(config.extra_headers)
        if self.api_key and config.auth.placement is AuthPlacement.HEADER:
            # Never log the key; just attach it to headers.
            default_headers[config.auth.header] = config.auth.header_value(self.api_key)

        super().__init__(
            base_url=expand_env(config.base_url) if config.base_url else "",
            default_headers=default_headers,
            timeout=config.timeout,
            retries=config.retries,
        )
        logger.info(
            "SourceAdapter initialized for %s with %d candidate(s).",
            config.name,
            len(config.candidates),
        )

    # -------------------------------------------------
    # Request shape
    # -------------------------------------------------
    def candidate_urls(self) -> List[str]:
        return [self.build_url(expand_env(c)) for c in self.config.candidates]

    def prepare_request(self, now: Optional[datetime] = None) -> PreparedRequest:
        config = self.config
        params: Dict[str, Any] = dict(config.extra_params)
        body: Dict[str, Any] = {}

        date_range = compute_date_range(config, now)
        if date_range is not None:
            style = config.date_range.style
            if style is DateParamStyle.QUERY:
                params.update(date_query_params(date_range))
            elif style is DateParamStyle.BODY:
                body.update(date_body(date_range, config.date_range.body_keys))

        if self.api_key:
            if config.auth.placement is AuthPlacement.QUERY:
                params[config.auth.param] = self.api_key
            elif config.auth.placement is AuthPlacement.BODY:
                body[config.auth.param] = self.api_key

        json_body: Optional[Dict[str, Any]] = None
        if config.method == "POST":
            json_body = body
        elif body:
            # GET cannot carry a body; fold the fields into the query string
            params.update({k: str(v) for k, v in body.items()})

        return PreparedRequest(
            method=config.method,
            params=params,
            json_body=json_body,
            date_range=date_range,
        )

    # -------------------------------------------------
    # Public methods
    # -------------------------------------------------
    def fetch_payload(self, now: Optional[datetime] = None) -> FetchResult:
        """Return the payload of the first candidate that answers with a leaderboard."""
        request = self.prepare_request(now)
        tried: List[str] = []
        errors: List[str] = []
        without_entries: Optional[FetchResult] = None

        for url in self.candidate_urls():
            tried.append(url)
            try:
                payload = self.request_json(
                    request.method,
                    url,
                    params=request.params or None,
                    json_body=request.json_body,
                )
            except APIClientError as e:
                logger.warning("%s: candidate failed: %s", self.config.name, e)
                errors.append(str(e))
                continue

            result = FetchResult(
                url=url, payload=payload, date_range=request.date_range, tried=list(tried)
            )
            if self.has_entries is not None and not self.has_entries(payload):
                logger.warning("%s: no leaderboard entries in response from %s", self.config.name, url)
                errors.append(f"No leaderboard entries returned from {url}")
                if without_entries is None:
                    without_entries = result
                continue

            logger.info("%s: fetched payload from %s", self.config.name, url)
            return result

        if without_entries is not None:
            without_entries.tried = list(tried)
            logger.info(
                "%s: no candidate returned entries, using response from %s",
                self.config.name,
                without_entries.url,
            )
            return without_entries

        raise SourceFetchError(self.config.name, tried, errors)

    def fetch_prize_tiers_payload(self) -> Optional[Any]:
        """
        Fetch the optional prize-tier endpoint (e.g. race metadata).
        Failures are logged and yield None; the static ladder still applies.
        """
        if not self.config.prizes_url:
            return None
        try:
            return self.get_json(expand_env(self.config.prizes_url))
        except APIClientError as e:
            logger.warning("%s: prize tier fetch failed: %s", self.config.name, e)
            return None

    async def afetch_payload(self, now: Optional[datetime] = None) -> FetchResult:
        return await asyncio.to_thread(self.fetch_payload, now)

    async def afetch_prize_tiers_payload(self) -> Optional[Any]:
        return await asyncio.to_thread(self.fetch_prize_tiers_payload)
