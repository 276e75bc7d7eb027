"""Configuration models and helpers for the sleep tracker."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta

from .night import is_night_hour


DEFAULT_NIGHT_START_HOUR = 1
DEFAULT_NIGHT_END_HOUR = 10
DEFAULT_NEEDED_SLEEP_HOURS = 8.0
DEFAULT_TAU_DAYS = 4.0
DEFAULT_ANALYSIS_DAYS = 14


class ConfigurationError(ValueError):
    """Raised when a configuration value is outside its allowed range."""


def _check_hour(name: str, value: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigurationError(f"{name} must be an integer hour, got {value!r}")
    if not 0 <= value <= 23:
        raise ConfigurationError(f"{name} must be between 0 and 23, got {value}")
    return value


@dataclass(slots=True, frozen=True)
class NightWindow:
    """Clock-hour range treated as plausible sleep time.

    ``start_hour > end_hour`` means the window wraps past midnight.
    """

    start_hour: int = DEFAULT_NIGHT_START_HOUR
    end_hour: int = DEFAULT_NIGHT_END_HOUR

    def __post_init__(self) -> None:
        _check_hour("start_hour", self.start_hour)
        _check_hour("end_hour", self.end_hour)

    @property
    def crosses_midnight(self) -> bool:
        return self.start_hour > self.end_hour

    def contains(self, hour: int) -> bool:
        return is_night_hour(hour, self.start_hour, self.end_hour)


@dataclass(slots=True, frozen=True)
class DebtSettings:
    """Target sleep and the exponential forgetting constant."""

    needed_sleep_hours: float = DEFAULT_NEEDED_SLEEP_HOURS
    tau_days: float = DEFAULT_TAU_DAYS
    analysis_days: int = DEFAULT_ANALYSIS_DAYS

    def __post_init__(self) -> None:
        if not 0 < self.needed_sleep_hours <= 24:
            raise ConfigurationError(
                f"needed_sleep_hours must be in (0, 24], got {self.needed_sleep_hours}"
            )
        if self.tau_days <= 0:
            raise ConfigurationError(f"tau_days must be positive, got {self.tau_days}")
        if self.analysis_days < 1:
            raise ConfigurationError(
                f"analysis_days must be at least 1, got {self.analysis_days}"
            )


@dataclass(slots=True)
class InferenceSettings:
    """Thresholds for the sleep inference passes."""

    min_sleep_duration: timedelta = timedelta(minutes=90)
    prune_gap: timedelta = timedelta(minutes=15)
    prune_protect_duration: timedelta = timedelta(hours=3)
    extension_gap: timedelta = timedelta(minutes=30)
    extension_min_duration: timedelta = timedelta(minutes=30)
    max_extension_steps: int = 10_000
    lookback: timedelta = timedelta(days=DEFAULT_ANALYSIS_DAYS)

    @property
    def min_sleep_minutes(self) -> int:
        return _minutes(self.min_sleep_duration)

    @property
    def prune_gap_minutes(self) -> int:
        return _minutes(self.prune_gap)

    @property
    def prune_protect_minutes(self) -> int:
        return _minutes(self.prune_protect_duration)

    @property
    def extension_gap_minutes(self) -> int:
        return _minutes(self.extension_gap)

    @property
    def extension_min_minutes(self) -> int:
        return _minutes(self.extension_min_duration)

    @classmethod
    def from_minutes(
        cls,
        min_sleep_minutes: float = 90,
        prune_gap_minutes: float = 15,
        extension_gap_minutes: float = 30,
        prune_protect_minutes: float | None = None,
        extension_min_minutes: float | None = None,
        lookback_days: float = DEFAULT_ANALYSIS_DAYS,
    ) -> "InferenceSettings":
        protect = prune_protect_minutes if prune_protect_minutes is not None else 180.0
        ext_min = extension_min_minutes if extension_min_minutes is not None else 30.0
        return cls(
            min_sleep_duration=timedelta(minutes=min_sleep_minutes),
            prune_gap=timedelta(minutes=prune_gap_minutes),
            prune_protect_duration=timedelta(minutes=protect),
            extension_gap=timedelta(minutes=extension_gap_minutes),
            extension_min_duration=timedelta(minutes=ext_min),
            lookback=timedelta(days=lookback_days),
        )


@dataclass(slots=True)
class AnalysisSettings:
    """Runtime configuration for the background analysis loop."""

    inference: InferenceSettings = field(default_factory=InferenceSettings)
    interval: timedelta = timedelta(minutes=15)

    @classmethod
    def from_intervals(
        cls, interval_minutes: float, inference: InferenceSettings | None = None
    ) -> "AnalysisSettings":
        return cls(
            inference=inference or InferenceSettings(),
            interval=timedelta(minutes=interval_minutes),
        )


def _minutes(value: timedelta) -> int:
    return int(value.total_seconds() // 60)
