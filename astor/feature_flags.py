"""Feature flags with rollout percentages, conditions and pluggable providers."""

from __future__ import annotations

import abc
import asyncio
import contextlib
import hashlib
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Mapping, Optional, TypeVar, Union

import httpx

from .errors import AstorError, ConfigurationError

logger = logging.getLogger(__name__)

T = TypeVar("T")

_FRACTION = re.compile(r"(\.\d{6})\d+")


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _parse_datetime(value: Any) -> datetime:
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        text = _FRACTION.sub(r"\1", text)
        parsed = datetime.fromisoformat(text)
    else:
        raise ValueError(f"not a timestamp: {value!r}")
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass(frozen=True)
class UserRoleCondition:
    roles: tuple[str, ...]

    def matches(self, context: EvaluationContext) -> bool:
        return context.user_role is not None and context.user_role in self.roles


@dataclass(frozen=True)
class EnvironmentCondition:
    environments: tuple[str, ...]

    def matches(self, context: EvaluationContext) -> bool:
        return context.environment in self.environments


@dataclass(frozen=True)
class UserAttributeCondition:
    key: str
    values: tuple[str, ...]

    def matches(self, context: EvaluationContext) -> bool:
        value = context.attributes.get(self.key)
        return value is not None and value in self.values


@dataclass(frozen=True)
class TimeWindowCondition:
    start: datetime
    end: datetime

    def matches(self, context: EvaluationContext) -> bool:
        return self.start <= _now() <= self.end


@dataclass(frozen=True)
class CustomCondition:
    """A named custom rule; custom rules never block a flag."""

    rule: str


Condition = Union[
    UserRoleCondition,
    EnvironmentCondition,
    UserAttributeCondition,
    TimeWindowCondition,
    CustomCondition,
]


def _condition_holds(condition: Condition, context: EvaluationContext) -> bool:
    if isinstance(condition, CustomCondition):
        return True
    return condition.matches(context)


@dataclass
class FeatureFlag:
    key: str
    enabled: bool
    rollout_percentage: float
    conditions: list[Condition] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)
    updated_at: datetime = field(default_factory=_now)


@dataclass
class EvaluationContext:
    environment: str
    user_id: Optional[str] = None
    user_role: Optional[str] = None
    attributes: dict[str, str] = field(default_factory=dict)


def _condition_from_dict(data: Any) -> Condition:
    if not isinstance(data, Mapping) or len(data) != 1:
        raise ValueError(f"malformed condition: {data!r}")
    (tag, body), = data.items()
    if not isinstance(body, Mapping):
        raise ValueError(f"malformed condition body: {body!r}")
    if tag == "UserRole":
        return UserRoleCondition(tuple(body["roles"]))
    if tag == "Environment":
        return EnvironmentCondition(tuple(body["environments"]))
    if tag == "UserAttribute":
        return UserAttributeCondition(body["key"], tuple(body["values"]))
    if tag == "TimeWindow":
        return TimeWindowCondition(
            _parse_datetime(body["start"]), _parse_datetime(body["end"])
        )
    if tag == "Custom":
        return CustomCondition(body["rule"])
    raise ValueError(f"unknown condition type: {tag}")


def flag_from_dict(data: Mapping[str, Any]) -> FeatureFlag:
    """Build a flag from its JSON form, raising ConfigurationError if malformed."""
    try:
        enabled = data["enabled"]
        if not isinstance(enabled, bool):
            raise ValueError("enabled must be a boolean")
        metadata = data["metadata"]
        if not isinstance(metadata, Mapping):
            raise ValueError("metadata must be an object")
        return FeatureFlag(
            key=str(data["key"]),
            enabled=enabled,
            rollout_percentage=float(data["rollout_percentage"]),
            conditions=[_condition_from_dict(c) for c in data["conditions"]],
            metadata=dict(metadata),
            updated_at=_parse_datetime(data["updated_at"]),
        )
    except (KeyError, TypeError, ValueError) as exc:
        raise ConfigurationError(f"Invalid feature flag: {exc}") from exc


class FeatureFlagProvider(abc.ABC):
    """Source of feature flag definitions."""

    @abc.abstractmethod
    async def get_flags(self) -> dict[str, FeatureFlag]:
        """Return every known flag keyed by name."""

    @abc.abstractmethod
    async def get_flag(self, key: str) -> Optional[FeatureFlag]:
        """Return one flag, or None when it does not exist."""


class LocalProvider(FeatureFlagProvider):
    """In-memory provider built from a mapping of flag names to on/off."""

    def __init__(self, flags: Mapping[str, bool]) -> None:
        self._flags = {
            key: FeatureFlag(
                key=key,
                enabled=enabled,
                rollout_percentage=100.0 if enabled else 0.0,
            )
            for key, enabled in flags.items()
        }

    async def get_flags(self) -> dict[str, FeatureFlag]:
        return dict(self._flags)

    async def get_flag(self, key: str) -> Optional[FeatureFlag]:
        return self._flags.get(key)


class RemoteProvider(FeatureFlagProvider):
    """Provider that fetches flags from an HTTP service."""

    def __init__(
        self,
        endpoint: str,
        api_key: str,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.endpoint = endpoint.rstrip("/")
        self._api_key = api_key
        self._client = client

    async def _get(self, path: str, what: str) -> httpx.Response:
        headers = {"Authorization": f"Bearer {self._api_key}"}
        url = f"{self.endpoint}{path}"
        try:
            if self._client is not None:
                return await self._client.get(url, headers=headers)
            async with httpx.AsyncClient() as client:
                return await client.get(url, headers=headers)
        except httpx.HTTPError as exc:
            raise ConfigurationError(f"Failed to fetch {what}: {exc}") from exc

    async def get_flags(self) -> dict[str, FeatureFlag]:
        response = await self._get("/flags", "flags")
        try:
            payload = response.json()
        except ValueError as exc:
            raise ConfigurationError(f"Failed to parse flags: {exc}") from exc
        if not isinstance(payload, Mapping):
            raise ConfigurationError("Failed to parse flags: expected an object")
        return {key: flag_from_dict(value) for key, value in payload.items()}

    async def get_flag(self, key: str) -> Optional[FeatureFlag]:
        response = await self._get(f"/flags/{key}", "flag")
        if response.status_code == 404:
            return None
        try:
            payload = response.json()
        except ValueError as exc:
            raise ConfigurationError(f"Failed to parse flag: {exc}") from exc
        if not isinstance(payload, Mapping):
            raise ConfigurationError("Failed to parse flag: expected an object")
        return flag_from_dict(payload)


def _coerce(value: Any, default: Any) -> Any:
    """Return ``value`` if it fits the type of ``default``, else raise TypeError."""
    if default is None:
        return value
    if isinstance(default, bool):
        if isinstance(value, bool):
            return value
    elif isinstance(default, int):
        if isinstance(value, int) and not isinstance(value, bool):
            return value
    elif isinstance(default, float):
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return float(value)
    elif isinstance(value, type(default)):
        return value
    raise TypeError(f"{value!r} does not match {type(default).__name__}")


class FeatureFlagManager:
    """Caches flags from a provider and evaluates them against a context."""

    def __init__(self, provider: FeatureFlagProvider, refresh_interval: float) -> None:
        self._provider = provider
        self._refresh_interval = refresh_interval
        self._flags: dict[str, FeatureFlag] = {}
        self._task: Optional[asyncio.Task[None]] = None

    async def refresh(self) -> None:
        """Replace the cached flags with the provider's current set."""
        self._flags = await self._provider.get_flags()

    async def start_refresh_task(self) -> None:
        """Load flags now, then keep refreshing them in the background."""
        await self.refresh()
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._refresh_loop())

    async def stop_refresh_task(self) -> None:
        task, self._task = self._task, None
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

    async def _refresh_loop(self) -> None:
        while True:
            await asyncio.sleep(self._refresh_interval)
            try:
                await self.refresh()
            except AstorError as exc:
                logger.warning("Failed to refresh feature flags: %s", exc)
            else:
                logger.debug("Feature flags refreshed")

    def is_enabled(self, key: str, context: EvaluationContext) -> bool:
        flag = self._flags.get(key)
        return flag is not None and self._evaluate(flag, context)

    def get_flag_value(self, key: str, default: T, context: EvaluationContext) -> T:
        """Return the flag's metadata ``value`` when it is on and fits, else default."""
        flag = self._flags.get(key)
        if flag is None or not self._evaluate(flag, context):
            return default
        if "value" not in flag.metadata:
            return default
        try:
            return _coerce(flag.metadata["value"], default)
        except TypeError:
            return default

    def all_flags(self) -> dict[str, FeatureFlag]:
        return dict(self._flags)

    def _evaluate(self, flag: FeatureFlag, context: EvaluationContext) -> bool:
        if not flag.enabled:
            return False
        if flag.rollout_percentage < 100.0:
            bucket = self._hash_context(context, flag.key) % 100
            if bucket >= flag.rollout_percentage:
                return False
        return all(_condition_holds(condition, context) for condition in flag.conditions)

    @staticmethod
    def _hash_context(context: EvaluationContext, flag_key: str) -> int:
        user = "\x00" if context.user_id is None else "\x01" + context.user_id
        digest = hashlib.sha256(f"{user}\x1f{flag_key}".encode()).digest()
        return int.from_bytes(digest[:4], "big")