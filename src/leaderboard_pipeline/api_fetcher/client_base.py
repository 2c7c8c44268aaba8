from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry


logger = logging.getLogger(__name__)


class APIClientError(RuntimeError):
    """Base error for API client failures."""


class APIClientTimeout(APIClientError):
    """Raised when request times out."""


class APIClientHTTPError(APIClientError):
    """Raised for non-success HTTP responses."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class BaseAPIClient:
    """
    Reusable base HTTP client for affiliate APIs.

    Features:
    - Persistent session
    - Default headers
    - Retry with exponential backoff
    - Configurable timeout
    - Safe JSON parsing
    - Absolute URLs pass through untouched, relative endpoints join base_url
    """

    DEFAULT_TIMEOUT = 15  # seconds
    DEFAULT_RETRIES = 3
    DEFAULT_BACKOFF_FACTOR = 0.5
    USER_AGENT = "LeaderboardPipeline/1.0"

    def __init__(
        self,
        base_url: str = "",
        default_headers: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None,
        retries: Optional[int] = None,
        backoff_factor: Optional[float] = None,
    ) -> None:

        self.base_url = (base_url or "").rstrip("/")
        self.timeout = timeout or self.DEFAULT_TIMEOUT

        self.session = requests.Session()

        headers = {
            "User-Agent": self.USER_AGENT,
            "Accept": "application/json",
        }

        if default_headers:
            headers.update(default_headers)

        self.session.headers.update(headers)

        retry_strategy = Retry(
            total=retries if retries is not None else self.DEFAULT_RETRIES,
            backoff_factor=backoff_factor if backoff_factor is not None else self.DEFAULT_BACKOFF_FACTOR,
            status_forcelist=[429, 500, 502, 503, 504],
            allowed_methods=["GET", "POST"],
            raise_on_status=False,
        )

        adapter = HTTPAdapter(max_retries=retry_strategy)
        self.session.mount("https://", adapter)
        self.session.mount("http://", adapter)

    def build_url(self, endpoint: str) -> str:
        if endpoint.startswith(("http://", "https://")):
            return endpoint
        if not self.base_url:
            raise APIClientError(f"Relative endpoint '{endpoint}' given without a base_url")
        return f"{self.base_url}/{endpoint.lstrip('/')}"

    # ---------------------------------------------------
    # Core request methods
    # ---------------------------------------------------
    def request_json(
        self,
        method: str,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
        json_body: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Any:
        """
        Send a request and return parsed JSON.
        Raises clean, structured errors.
        """

        url = self.build_url(endpoint)

        try:
            response = self.session.request(
                method.upper(),
                url,
                params=params,
                json=json_body,
                headers=headers,
                timeout=self.timeout,
            )
        except requests.Timeout as e:
            raise APIClientTimeout(
                f"Request timed out calling {url}"
            ) from e
        except requests.RequestException as e:
            raise APIClientError(
                f"Request failed calling {url}"
            ) from e

        if response.status_code >= 400:
            raise APIClientHTTPError(
                f"HTTP {response.status_code} returned from {url}",
                status_code=response.status_code,
            )

        try:
            return response.json()
        except ValueError as e:
            raise APIClientError(
                f"Invalid JSON returned from {url}"
            ) from e

    def get_json(
        self,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Any:
        return self.request_json("GET", endpoint, params=params, headers=headers)

    def post_json(
        self,
        endpoint: str,
        json_body: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Any:
        return self.request_json(
            "POST", endpoint, params=params, json_body=json_body, headers=headers
        )

    def close(self) -> None:
        self.session.close()
