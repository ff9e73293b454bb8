from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, ConfigDict
from pydantic_settings import BaseSettings


class ConfigError(Exception):
    """Raised when the watchdog cannot start with the given configuration."""


class WatchTarget(BaseModel):
    """Immutable description of what the checks look at.

    Built once at startup and shared read-only by every check.
    """

    model_config = ConfigDict(frozen=True)

    watch_path: Path
    volume_path: Path
    check_interval_seconds: float = 600.0
    check_timeout_seconds: float = 60.0
    logging_cycle_minutes: float = 10.0
    freshness_factor: float = 1.5
    min_free_bytes: int = 10_000_000_000
    dsview_processes: tuple[str, ...] = ("DSView",)
    power_automate_processes: tuple[str, ...] = ("PAD.Console.Host", "PowerAutomate")

    @property
    def freshness_threshold_minutes(self) -> float:
        return self.logging_cycle_minutes * self.freshness_factor


class Settings(BaseSettings):
    """Central configuration loaded from environment / .env file."""

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    # Target (watch_path empty = invoking user's home directory)
    watch_path: str = ""
    volume_path: str = ""  # empty = same volume as watch_path

    # Scheduling
    check_interval_seconds: float = 600.0  # 10 minutes
    check_timeout_seconds: float = 0.0  # 0 = one full interval
    grace_period_seconds: float = 1.0

    # Freshness: fail after 1.5 logging cycles without a new file
    logging_cycle_minutes: float = 10.0
    freshness_factor: float = 1.5

    # Storage floor (bytes)
    min_free_bytes: int = 10_000_000_000

    # External applications (process names, .exe suffix optional)
    dsview_processes: list[str] = ["DSView"]
    power_automate_processes: list[str] = ["PAD.Console.Host", "PowerAutomate"]

    # Run below normal priority so polling never starves the loggers
    low_priority: bool = True

    # Logging
    log_level: str = "INFO"

    # Notifications (Slack is the primary channel, Telegram optional)
    slack_webhook_url: str = ""
    telegram_bot_token: str = ""
    telegram_chat_id: str = ""

    def to_target(self, path: str | None = None, volume: str | None = None) -> WatchTarget:
        """Resolve and validate the watch target, raising ConfigError if unusable."""
        raw = path or self.watch_path
        if raw:
            watch = Path(raw).expanduser()
        else:
            try:
                watch = Path.home()
            except RuntimeError as e:
                raise ConfigError(f"Cannot resolve home directory: {e}") from e

        watch = watch.resolve()
        if not watch.exists():
            raise ConfigError(f"Watch path does not exist: {watch}")
        if not watch.is_dir():
            raise ConfigError(f"Watch path is not a directory: {watch}")

        vol_raw = volume or self.volume_path
        vol = Path(vol_raw).expanduser().resolve() if vol_raw else watch
        if not vol.exists():
            raise ConfigError(f"Volume path does not exist: {vol}")

        if self.check_interval_seconds <= 0:
            raise ConfigError(f"Check interval must be positive, got {self.check_interval_seconds}")
        if self.check_timeout_seconds < 0:
            raise ConfigError(f"Check timeout must not be negative, got {self.check_timeout_seconds}")
        if self.grace_period_seconds < 0:
            raise ConfigError(f"Grace period must not be negative, got {self.grace_period_seconds}")
        if self.logging_cycle_minutes <= 0 or self.freshness_factor <= 0:
            raise ConfigError("Logging cycle and freshness factor must be positive")

        timeout = self.check_timeout_seconds or self.check_interval_seconds
        return WatchTarget(
            watch_path=watch,
            volume_path=vol,
            check_interval_seconds=self.check_interval_seconds,
            check_timeout_seconds=min(timeout, self.check_interval_seconds),
            logging_cycle_minutes=self.logging_cycle_minutes,
            freshness_factor=self.freshness_factor,
            min_free_bytes=self.min_free_bytes,
            dsview_processes=tuple(self.dsview_processes),
            power_automate_processes=tuple(self.power_automate_processes),
        )


_settings: Settings | None = None


def get_settings() -> Settings:
    """Return the process-level settings, loading them on first use.

    Raises pydantic.ValidationError if the environment holds a malformed value.
    """
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
