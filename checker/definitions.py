"""
Typed check definition contract.

The check document is treated as an API contract:
  - a closed set of check kinds (http, dns, ssh), each with its own params shape
  - per-field defaults layering: check value > document "defaults" > settings
  - every problem is a ConfigError raised before any probe runs
"""

from __future__ import annotations

import re
import sys
from pathlib import Path
from typing import TYPE_CHECKING, Any, Literal, Optional, Union
from urllib.parse import urlparse

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator
from pydantic.alias_generators import to_camel

if TYPE_CHECKING:
    from config.settings import Settings

CHECK_KINDS = ("http", "dns", "ssh")
_CAMEL_RE = re.compile(r"(?<!^)(?=[A-Z])")
# Older documents spell the ssh login name "user".
_KEY_ALIASES = {"user": "username"}
_CHECK_KEYS = {"type", "params", "retry_policy", "check_timeout", "labels", "alert_policy"}
_DEFAULTS_KEYS = {*CHECK_KINDS, "retry_policy", "check_timeout"}


class ConfigError(ValueError):
    """The check document or a definition in it is invalid."""


class _Frozen(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        alias_generator=to_camel,
        populate_by_name=True,
    )


# ---------------------------------------------------------------------------
# Per-kind params
# ---------------------------------------------------------------------------


class HttpParams(_Frozen):
    url: str

    @field_validator("url")
    @classmethod
    def validate_url(cls, value: str) -> str:
        value = value.strip()
        parsed = urlparse(value)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValueError(f"'{value}' is not an http(s) URL")
        return value


class DnsParams(_Frozen):
    domain: str

    @field_validator("domain")
    @classmethod
    def non_empty_domain(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("domain must be a non-empty string")
        return value


class SshParams(_Frozen):
    hostname: str
    command: str
    username: Optional[str] = None

    @field_validator("hostname", "command")
    @classmethod
    def non_empty_required(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must be a non-empty string")
        return value

    @field_validator("username")
    @classmethod
    def blank_username_is_none(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return value.strip() or None


PARAMS_BY_KIND: dict[str, type[BaseModel]] = {
    "http": HttpParams,
    "dns": DnsParams,
    "ssh": SshParams,
}


# ---------------------------------------------------------------------------
# Policies
# ---------------------------------------------------------------------------


class RetryPolicy(_Frozen):
    """How many attempts a check gets and how long to wait between them."""

    max_retries: int
    initial: float
    multiplier: float

    @field_validator("max_retries")
    @classmethod
    def validate_max_retries(cls, value: int) -> int:
        if value < 0:
            raise ValueError("maxRetries must be >= 0")
        return value

    @field_validator("initial")
    @classmethod
    def validate_initial(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("initial must be > 0 seconds")
        return value

    @field_validator("multiplier")
    @classmethod
    def validate_multiplier(cls, value: float) -> float:
        if value < 1.0:
            raise ValueError("multiplier must be >= 1.0")
        return value


class AlertPolicy(_Frozen):
    """Intervals for a recurring mode. Carried through, never consumed by a one-shot run."""

    check_interval: float
    recheck_interval: float

    @field_validator("check_interval", "recheck_interval")
    @classmethod
    def positive_interval(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("must be > 0 seconds")
        return value


# ---------------------------------------------------------------------------
# Check definition
# ---------------------------------------------------------------------------


class CheckDefinition(_Frozen):
    """One fully-resolved check: kind + params + policies + labels."""

    kind: Literal["http", "dns", "ssh"] = Field(..., alias="type")
    params: Union[HttpParams, DnsParams, SshParams]
    retry_policy: RetryPolicy
    check_timeout: float
    labels: dict[str, str] = Field(default_factory=dict)
    alert_policy: Optional[AlertPolicy] = None

    @model_validator(mode="before")
    @classmethod
    def params_match_kind(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        kind = data.get("type", data.get("kind"))
        if kind not in PARAMS_BY_KIND:
            raise ValueError(
                f"unknown check type {kind!r}; expected one of: {', '.join(CHECK_KINDS)}"
            )
        params = data.get("params")
        expected = PARAMS_BY_KIND[kind]
        if isinstance(params, BaseModel) and not isinstance(params, expected):
            raise ValueError(
                f"{kind} check given {type(params).__name__}; expected {expected.__name__}"
            )
        if params is None:
            raise ValueError(f"{kind} check requires 'params'")
        if isinstance(params, dict):
            try:
                data = {**data, "params": expected.model_validate(params)}
            except ValidationError as exc:
                raise ValueError(f"invalid {kind} params: {exc}") from exc
        return data

    @field_validator("check_timeout")
    @classmethod
    def validate_check_timeout(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("checkTimeout must be > 0 seconds")
        return value

    @field_validator("labels", mode="before")
    @classmethod
    def stringify_labels(cls, value: Any) -> Any:
        if value is None:
            return {}
        if not isinstance(value, dict):
            raise ValueError("labels must be a mapping of string keys to values")
        cleaned: dict[str, str] = {}
        for key, label_value in value.items():
            if not isinstance(key, str) or not key:
                raise ValueError(f"label key {key!r} must be a non-empty string")
            if isinstance(label_value, (dict, list)):
                raise ValueError(f"label '{key}' must be a scalar value")
            cleaned[key] = "" if label_value is None else str(label_value)
        return cleaned

    @property
    def name(self) -> str:
        """Human-readable identity used in event output."""
        params = self.params
        if isinstance(params, HttpParams):
            return f"http {params.url}"
        if isinstance(params, DnsParams):
            return f"dns '{params.domain}'"
        return f"ssh {params.hostname}: '{params.command}'"


# ---------------------------------------------------------------------------
# Document loading + defaults layering
# ---------------------------------------------------------------------------


def _snake(key: str) -> str:
    snake = _CAMEL_RE.sub("_", key).lower()
    return _KEY_ALIASES.get(snake, snake)


def _layer(*layers: Any) -> dict[str, Any]:
    """Merge mappings left to right; later non-null values win, keys normalised to snake_case."""
    merged: dict[str, Any] = {}
    for layer in layers:
        if layer is None:
            continue
        if not isinstance(layer, dict):
            raise ConfigError(f"expected a mapping, got {type(layer).__name__}")
        for key, value in layer.items():
            if value is not None:
                merged[_snake(str(key))] = value
    return merged


def builtin_defaults(settings: Settings | None = None) -> dict[str, Any]:
    """The lowest defaults layer, from settings when given."""
    if settings is None:
        return {
            "retry_policy": {"max_retries": 3, "initial": 1.0, "multiplier": 1.1},
            "check_timeout": 10.0,
            "ssh": {"username": "root"},
        }
    return {
        "retry_policy": _layer(settings.default_retry_policy),
        "check_timeout": settings.HEALTHCHECK_DEFAULT_TIMEOUT_SECONDS,
        "ssh": {"username": settings.HEALTHCHECK_DEFAULT_SSH_USERNAME},
    }


def resolve_check(
    raw: dict[str, Any],
    defaults: dict[str, Any] | None = None,
    settings: Settings | None = None,
) -> dict[str, Any]:
    """Apply the defaults layers to one raw check entry, returning model input."""
    if not isinstance(raw, dict):
        raise ConfigError(f"check entry must be a mapping, got {type(raw).__name__}")
    entry = _layer(raw)
    doc_defaults = _layer(defaults)
    builtins = builtin_defaults(settings)

    unknown = sorted(set(entry) - _CHECK_KEYS)
    if unknown:
        raise ConfigError(f"unknown key(s): {', '.join(unknown)}")
    unknown_defaults = sorted(set(doc_defaults) - _DEFAULTS_KEYS)
    if unknown_defaults:
        raise ConfigError(f"unknown defaults key(s): {', '.join(unknown_defaults)}")

    kind = entry.get("type")
    if kind not in CHECK_KINDS:
        raise ConfigError(
            f"unknown check type {kind!r}; expected one of: {', '.join(CHECK_KINDS)}"
        )

    resolved: dict[str, Any] = {
        "type": kind,
        "params": _layer(builtins.get(kind), doc_defaults.get(kind), entry.get("params")),
        "retry_policy": _layer(
            builtins["retry_policy"], doc_defaults.get("retry_policy"), entry.get("retry_policy")
        ),
        "check_timeout": _layer(
            {"check_timeout": builtins["check_timeout"]},
            {"check_timeout": doc_defaults.get("check_timeout")},
            {"check_timeout": entry.get("check_timeout")},
        ).get("check_timeout"),
        "labels": entry.get("labels") or {},
    }
    if entry.get("alert_policy") is not None:
        resolved["alert_policy"] = _layer(entry["alert_policy"])
    return resolved


def parse_checks(payload: Any, settings: Settings | None = None) -> list[CheckDefinition]:
    """Validate a loaded document into fully-resolved definitions."""
    if not isinstance(payload, dict):
        raise ConfigError("check document root must be a mapping/object")
    unknown = sorted(set(payload) - {"checks", "defaults"})
    if unknown:
        raise ConfigError(f"unknown top-level key(s): {', '.join(unknown)}")
    checks = payload.get("checks")
    if checks is None:
        checks = []
    if not isinstance(checks, list):
        raise ConfigError("'checks' must be a list")
    defaults = payload.get("defaults")
    if defaults is not None and not isinstance(defaults, dict):
        raise ConfigError("'defaults' must be a mapping")

    definitions: list[CheckDefinition] = []
    for idx, raw in enumerate(checks):
        try:
            resolved = resolve_check(raw, defaults, settings)
            definitions.append(CheckDefinition.model_validate(resolved))
        except ConfigError as exc:
            raise ConfigError(f"checks[{idx}]: {exc}") from exc
        except ValidationError as exc:
            raise ConfigError(f"checks[{idx}]: {exc}") from exc
    return definitions


def load_document(source: str) -> Any:
    """Read a JSON or YAML check document from a path, or stdin for '-'."""
    if source == "-":
        text = sys.stdin.read()
    else:
        path = Path(source)
        if not path.exists():
            raise FileNotFoundError(f"Check document not found: {path}")
        text = path.read_text(encoding="utf-8")
    try:
        # JSON is a subset of YAML, so one loader covers both formats.
        return yaml.safe_load(text) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"could not parse check document {source!r}: {exc}") from exc


def load_checks(source: str, settings: Settings | None = None) -> list[CheckDefinition]:
    return parse_checks(load_document(source), settings)
