"""
Per-source configuration.

Each affiliate source is described by one `SourceConfig` record: where to
look (candidate URLs), how to authenticate, which date range to request,
what units the wager fields use and which prize ladder applies. Records are
loaded from YAML; secrets come from environment variables named in the
record, never from the file itself.
"""

from __future__ import annotations

import calendar
import logging
import os
import re
from datetime import date, datetime, time, timedelta, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional, Tuple, Union

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from .schema import PrizeEntry, PrizePolicy, WagerUnits


logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path(__file__).parent / "sources_config.yaml"
TIMEOUT_ENV = "LEADERBOARD_TIMEOUT_SEC"


class SourceConfigError(RuntimeError):
    """Raised when source configuration is missing or invalid."""


class AuthScheme(str, Enum):
    RAW = "raw"
    BEARER = "bearer"
    TOKEN = "token"


class AuthPlacement(str, Enum):
    HEADER = "header"
    QUERY = "query"
    BODY = "body"


class DateRangeMode(str, Enum):
    NONE = "none"
    CURRENT_MONTH = "current_month"
    FIXED = "fixed"


class DateParamStyle(str, Enum):
    NONE = "none"
    QUERY = "query"
    BODY = "body"


class AuthConfig(BaseModel):
    api_key_env: Optional[str] = Field(None, description="Env var holding the API key")
    required: bool = Field(True, description="Fail the source when the key is missing")
    placement: AuthPlacement = AuthPlacement.HEADER
    header: str = "x-api-key"
    scheme: AuthScheme = AuthScheme.RAW
    param: str = Field("key", description="Query/body parameter name for the key")

    def resolve_key(self) -> Optional[str]:
        if not self.api_key_env:
            return None
        return os.getenv(self.api_key_env) or None

    def header_value(self, key: str) -> str:
        if self.scheme is AuthScheme.BEARER:
            return f"Bearer {key}"
        if self.scheme is AuthScheme.TOKEN:
            return f"Token {key}"
        return key


class DateRangeConfig(BaseModel):
    mode: DateRangeMode = DateRangeMode.NONE
    start: Optional[Union[datetime, date]] = None
    end: Optional[Union[datetime, date]] = None
    style: DateParamStyle = DateParamStyle.QUERY
    body_keys: Tuple[str, str] = ("start", "end")

    @field_validator("start", "end", mode="before")
    @classmethod
    def validate_bounds(cls, v):
        # "2025-12-06" stays a date so a date-only end covers the whole day
        if isinstance(v, str):
            v = v.strip()
            try:
                if len(v) == 10:
                    return date.fromisoformat(v)
                return datetime.fromisoformat(v.replace("Z", "+00:00"))
            except ValueError as e:
                raise ValueError(f"invalid date '{v}'") from e
        return v

    @model_validator(mode="after")
    def validate_fixed_range(self):
        if self.mode is DateRangeMode.FIXED:
            if self.start is None or self.end is None:
                raise ValueError("fixed date range needs both start and end")
        return self


_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def _epoch_ms(value: datetime) -> int:
    return (value - _EPOCH) // timedelta(milliseconds=1)


class DateRange(BaseModel):
    start: datetime
    end: datetime
    monthly: bool = False

    @property
    def start_ms(self) -> int:
        return _epoch_ms(self.start)

    @property
    def end_ms(self) -> int:
        return _epoch_ms(self.end)

    def as_period(self) -> Dict[str, str]:
        return {
            "start": self.start.isoformat(timespec="milliseconds"),
            "end": self.end.isoformat(timespec="milliseconds"),
        }


class SourceConfig(BaseModel):
    """Everything needed to fetch and normalize one upstream leaderboard."""

    name: str
    enabled: bool = True
    base_url: Optional[str] = None
    candidates: List[str] = Field(..., min_length=1)
    method: Literal["GET", "POST"] = "GET"
    auth: AuthConfig = Field(default_factory=AuthConfig)
    extra_headers: Dict[str, str] = Field(default_factory=dict)
    extra_params: Dict[str, str] = Field(default_factory=dict)
    date_range: DateRangeConfig = Field(default_factory=DateRangeConfig)
    units: WagerUnits = WagerUnits.BASE

    prize_ladder: List[PrizeEntry] = Field(default_factory=list)
    prize_policy: PrizePolicy = PrizePolicy.LADDER
    prizes_url: Optional[str] = Field(
        None, description="Optional endpoint carrying prize tiers (e.g. race metadata)"
    )
    trust_entry_prizes: bool = True

    limit: Optional[int] = Field(None, ge=0)
    pad_to: Optional[int] = Field(None, ge=0)
    placeholder_username: Optional[str] = None
    rerank_by_wagered: bool = False

    timeout: float = Field(15.0, gt=0)
    retries: int = Field(1, ge=0)

    @field_validator("name")
    @classmethod
    def validate_name(cls, v):
        v = v.strip().lower()
        if not v or any(ch in v for ch in "/\\ "):
            raise ValueError("source name must be a non-empty slug")
        return v

    @field_validator("method", mode="before")
    @classmethod
    def validate_method(cls, v):
        return v.upper() if isinstance(v, str) else v

    @field_validator("prize_ladder", mode="before")
    @classmethod
    def validate_prize_ladder(cls, v):
        # [1050, 750, 500] shorthand or {1: 1050, 2: 750}
        if v is None:
            return []
        if isinstance(v, dict):
            return [{"rank": int(rank), "amount": amount} for rank, amount in v.items()]
        if isinstance(v, list):
            return [
                {"rank": i, "amount": item} if isinstance(item, (int, float)) else item
                for i, item in enumerate(v, start=1)
            ]
        return v


_ENV_REF = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")


def expand_env(value: str) -> str:
    """Substitute ${VAR} references; an unset variable is a config error."""

    def _sub(match: "re.Match[str]") -> str:
        resolved = os.getenv(match.group(1))
        if not resolved:
            raise SourceConfigError(f"Environment variable {match.group(1)} is not set")
        return resolved

    return _ENV_REF.sub(_sub, value)


# ---------------------------------------------------
# Date ranges
# ---------------------------------------------------
def _as_utc(value: Union[datetime, date], end_of_day: bool = False) -> datetime:
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if end_of_day:
        return datetime.combine(value, time.max, tzinfo=timezone.utc).replace(microsecond=999000)
    return datetime.combine(value, time.min, tzinfo=timezone.utc)


def current_month_range(now: Optional[datetime] = None) -> DateRange:
    """First instant to last millisecond of the current calendar month in UTC."""
    now = now or datetime.now(timezone.utc)
    now = _as_utc(now).astimezone(timezone.utc)
    start = datetime(now.year, now.month, 1, tzinfo=timezone.utc)
    days = calendar.monthrange(now.year, now.month)[1]
    end = start + timedelta(days=days) - timedelta(milliseconds=1)
    return DateRange(start=start, end=end, monthly=True)


def compute_date_range(config: SourceConfig, now: Optional[datetime] = None) -> Optional[DateRange]:
    settings = config.date_range
    if settings.mode is DateRangeMode.CURRENT_MONTH:
        return current_month_range(now)
    if settings.mode is DateRangeMode.FIXED:
        return DateRange(
            start=_as_utc(settings.start),
            end=_as_utc(settings.end, end_of_day=True),
        )
    return None


def date_query_params(date_range: DateRange) -> Dict[str, str]:
    """
    The same range under every naming convention we have seen; servers
    ignore the ones they do not know.
    """
    start_day = date_range.start.date().isoformat()
    end_day = date_range.end.date().isoformat()
    params = {
        "start": start_day,
        "end": end_day,
        "from": start_day,
        "to": end_day,
        "date_from": start_day,
        "date_to": end_day,
        "startDate": start_day,
        "endDate": end_day,
        "start_at": start_day,
        "end_at": end_day,
        "from_ts": str(int(date_range.start.timestamp())),
        "to_ts": str(int(date_range.end.timestamp())),
    }
    if date_range.monthly:
        params["period"] = "month"
    return params


def date_body(date_range: DateRange, keys: Tuple[str, str]) -> Dict[str, int]:
    start_key, end_key = keys
    return {start_key: date_range.start_ms, end_key: date_range.end_ms}


# ---------------------------------------------------
# Loading
# ---------------------------------------------------
def _timeout_override() -> Optional[float]:
    raw = os.getenv(TIMEOUT_ENV, "").strip()
    if not raw:
        return None
    try:
        return float(raw)
    except ValueError as e:
        raise SourceConfigError(
            f"{TIMEOUT_ENV} must be a number, got '{raw}'."
        ) from e


def parse_source_configs(config: Dict[str, Any]) -> List[SourceConfig]:
    """
    Build SourceConfig records from a parsed config mapping:

        global:   {timeout: 15, retries: 1}
        sources:  {csgold: {...}, dejen: {...}}
    """
    if not isinstance(config, dict):
        raise SourceConfigError("Source configuration must be a mapping")

    global_settings = config.get("global") or {}
    sources = config.get("sources") or {}
    if not isinstance(sources, dict):
        raise SourceConfigError("'sources' must map source names to settings")

    timeout = _timeout_override()

    parsed: List[SourceConfig] = []
    for source_name, source_settings in sources.items():
        merged = {**global_settings, **(source_settings or {})}
        merged.setdefault("name", source_name)
        if timeout is not None:
            merged["timeout"] = timeout
        try:
            parsed.append(SourceConfig.model_validate(merged))
        except ValidationError as e:
            raise SourceConfigError(f"Invalid configuration for source '{source_name}': {e}") from e

    return parsed


def load_source_configs(
    config_path: Optional[Union[str, Path]] = None,
    only: Optional[List[str]] = None,
) -> List[SourceConfig]:
    """
    Load source configuration from YAML. Disabled sources are dropped;
    `only` further restricts to the named sources.
    """
    path = Path(config_path) if config_path else DEFAULT_CONFIG_PATH
    try:
        with open(path, encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
    except OSError as e:
        raise SourceConfigError(f"Cannot read source configuration {path}: {e}") from e
    except yaml.YAMLError as e:
        raise SourceConfigError(f"Invalid YAML in {path}: {e}") from e

    configs = [c for c in parse_source_configs(raw) if c.enabled]

    if only:
        wanted = {name.strip().lower() for name in only}
        unknown = wanted - {c.name for c in configs}
        if unknown:
            raise SourceConfigError(
                f"Unknown or disabled sources: {sorted(unknown)}. "
                f"Available sources: {[c.name for c in configs]}"
            )
        configs = [c for c in configs if c.name in wanted]

    logger.info("Loaded %d source configuration(s) from %s", len(configs), path)
    return configs
