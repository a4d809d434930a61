"""
Feature gates and kill switches.

Flags are process-wide configuration, read from a YAML file at first use and
re-read once the refresh interval has passed. Each entry states its polarity
explicitly::

    flags:
      loyalty:
        enabled: true
      credit_writes:
        enabled: true
        disabled: false   # set to true to stop all credit mutations

A feature is available only if its entry exists, ``enabled`` is true and
``disabled`` is not true. A missing entry, a missing file or an unreadable
file all mean "unavailable".
"""
import enum
import threading
import time
from pathlib import Path
from typing import Callable, Dict, Optional
import yaml
from fastapi import Depends
from pydantic import BaseModel, ValidationError
from crm.core.config import settings
from crm.core.exceptions import Unavailable
from crm.core.logging_config import logger


class FeatureFlag(str, enum.Enum):
    CREDIT_WRITES = "credit_writes"
    CREDIT_SETUP_INTENT = "credit_setup_intent"
    LOYALTY = "loyalty"
    ORDERS_ON_CREDIT = "orders_on_credit"


class FlagState(BaseModel):
    enabled: bool = False
    disabled: bool = False
    description: Optional[str] = None

    @property
    def is_available(self) -> bool:
        return self.enabled and not self.disabled


class FlagProvider:
    def get(self, name: str) -> Optional[FlagState]:
        raise NotImplementedError

    def is_enabled(self, name: str) -> bool:
        state = self.get(name)
        return state is not None and state.is_available

    def snapshot(self) -> Dict[str, bool]:
        return {flag.value: self.is_enabled(flag.value) for flag in FeatureFlag}


class YamlFlagProvider(FlagProvider):
    def __init__(
        self,
        path: str,
        refresh_seconds: int = 60,
        clock: Callable[[], float] = time.monotonic
    ):
        self.path = Path(path)
        self.refresh_seconds = refresh_seconds
        self._clock = clock
        self._flags: Dict[str, FlagState] = {}
        self._loaded_at: Optional[float] = None
        self._lock = threading.Lock()

    def _load(self) -> Dict[str, FlagState]:
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                raw = yaml.safe_load(f) or {}
            entries = raw.get("flags") or {}
            return {name: FlagState(**(value or {})) for name, value in entries.items()}
        except FileNotFoundError:
            logger.warning(f"Feature flag file not found: {self.path}; all flags disabled")
        except (yaml.YAMLError, ValidationError, AttributeError, TypeError) as e:
            logger.error(f"Feature flag file unreadable: {type(e).__name__}: {str(e)}; all flags disabled")
        return {}

    def refresh(self) -> None:
        flags = self._load()
        with self._lock:
            self._flags = flags
            self._loaded_at = self._clock()

    @property
    def loaded(self) -> bool:
        return self._loaded_at is not None and bool(self._flags)

    def get(self, name: str) -> Optional[FlagState]:
        if self._loaded_at is None or self._clock() - self._loaded_at >= self.refresh_seconds:
            self.refresh()
        with self._lock:
            return self._flags.get(name)


class StaticFlagProvider(FlagProvider):
    def __init__(self, flags: Optional[Dict[str, FlagState]] = None):
        self.flags: Dict[str, FlagState] = dict(flags or {})

    @classmethod
    def all_enabled(cls) -> "StaticFlagProvider":
        return cls({flag.value: FlagState(enabled=True) for flag in FeatureFlag})

    def set(self, name: str, state: FlagState) -> None:
        self.flags[name] = state

    def get(self, name: str) -> Optional[FlagState]:
        return self.flags.get(name)


flag_provider = YamlFlagProvider(
    settings.FEATURE_FLAGS_PATH,
    refresh_seconds=settings.FEATURE_FLAGS_REFRESH_SECONDS,
)


def get_flag_provider() -> FlagProvider:
    return flag_provider


def require_feature(flag: FeatureFlag):
    """Build a dependency that rejects the request with 503 unless the flag is available."""

    def dependency(flags: FlagProvider = Depends(get_flag_provider)) -> None:
        if not flags.is_enabled(flag.value):
            raise Unavailable(f"Feature '{flag.value}' is disabled")

    return dependency
