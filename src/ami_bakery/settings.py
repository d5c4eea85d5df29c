"""Image baker configuration settings.

BakerySettings is intentionally a plain dataclass (not env-coupled) so tests
can inject config without touching os.environ. ``from_env`` is the
production convenience factory.
"""

from __future__ import annotations

import os
from dataclasses import dataclass


class SettingsError(ValueError):
    """Raised when an environment value cannot be parsed or settings are invalid."""


@dataclass(frozen=True, slots=True)
class BakerySettings:
    """Configuration for one regional image-baking run."""

    # ── Control plane ──────────────────────────────────────────────
    region: str = "us-east-1"
    """Region the image is created in and recorded under."""

    # ── Progress store ─────────────────────────────────────────────
    db_path: str = "pacman.db"
    """Path of the sqlite file holding the bake_ami table."""

    # ── Waiter ─────────────────────────────────────────────────────
    poll_interval_seconds: float = 2.0
    wait_timeout_seconds: float = 3600.0
    max_transport_retries: int = 3
    """Consecutive failed refreshes tolerated before the wait fails."""

    not_found_checks: int = 20
    """Ticks a freshly created image may stay invisible before failing."""

    # ── Logging ────────────────────────────────────────────────────
    log_level: str = "INFO"
    log_format: str = "json"

    @property
    def json_logs(self) -> bool:
        return self.log_format == "json"

    def validate(self) -> list[str]:
        """Return a list of configuration errors. Empty means valid."""
        errors: list[str] = []
        if not self.region:
            errors.append("region is required")
        if not self.db_path:
            errors.append("db_path is required")
        if self.poll_interval_seconds <= 0:
            errors.append("poll_interval_seconds must be > 0")
        if self.wait_timeout_seconds <= 0:
            errors.append("wait_timeout_seconds must be > 0")
        elif self.poll_interval_seconds >= self.wait_timeout_seconds:
            errors.append("poll_interval_seconds must be below wait_timeout_seconds")
        if self.max_transport_retries < 0:
            errors.append("max_transport_retries must be >= 0")
        if self.not_found_checks < 0:
            errors.append("not_found_checks must be >= 0")
        return errors

    def require_valid(self) -> None:
        errors = self.validate()
        if errors:
            raise SettingsError(
                "Bakery settings validation failed:\n"
                + "\n".join(f"  - {e}" for e in errors)
            )

    @classmethod
    def from_env(cls, env: dict[str, str] | None = None) -> BakerySettings:
        """Build settings from environment variables.

        Raises SettingsError if a numeric variable does not parse.
        """
        if env is None:
            env = dict(os.environ)
        defaults = cls()

        return cls(
            region=env.get("AWS_REGION", defaults.region),
            db_path=env.get("BAKERY_DB_PATH", defaults.db_path),
            poll_interval_seconds=_parse(
                env, "BAKERY_POLL_INTERVAL_SECONDS", float, defaults.poll_interval_seconds,
            ),
            wait_timeout_seconds=_parse(
                env, "BAKERY_WAIT_TIMEOUT_SECONDS", float, defaults.wait_timeout_seconds,
            ),
            max_transport_retries=_parse(
                env, "BAKERY_MAX_TRANSPORT_RETRIES", int, defaults.max_transport_retries,
            ),
            not_found_checks=_parse(
                env, "BAKERY_NOT_FOUND_CHECKS", int, defaults.not_found_checks,
            ),
            log_level=env.get("LOG_LEVEL", defaults.log_level),
            log_format=env.get("LOG_FORMAT", defaults.log_format),
        )


def _parse(env: dict[str, str], key: str, cast: type, default: float | int):
    raw = env.get(key, "").strip()
    if not raw:
        return default
    try:
        return cast(raw)
    except ValueError as exc:
        raise SettingsError(f"{key}={raw!r} is not a valid {cast.__name__}") from exc
