"""
License policy configuration loader.

Loads watcher cadence, expiry warning window and push settings from
config/license_policy.yml. Individual keys can be overridden from the
environment:

  LICENSE_POLICY_PATH          explicit path to the YAML file
  LICENSE_WATCH_INTERVAL       watcher.interval_seconds
  LICENSE_EXPIRY_WARNING_DAYS  expiry_warning.days
  LICENSE_EXPIRY_JOB_INTERVAL  expiry_warning.job_interval_seconds

Consumers:
  - LicenseWatcher: tick interval
  - license_expiry_job: warning window and job cadence
  - LicenseWatcher.get_license_status: limit warning ratio

Usage:
    from license_engine.config.license_policy import get_license_policy_loader

    policy = get_license_policy_loader().get_policy()
    policy.watch_interval_seconds  # 60
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from threading import Lock
from typing import Any, Dict, Optional

import yaml

logger = logging.getLogger(__name__)

_DEFAULT_WATCH_INTERVAL_SECONDS = 60
_DEFAULT_EXPIRY_WARNING_DAYS = 7
_DEFAULT_EXPIRY_JOB_INTERVAL_SECONDS = 86400
_DEFAULT_LIMIT_WARNING_RATIO = 0.9


@dataclass(frozen=True)
class LicensePolicy:
    """Resolved policy values after YAML + environment overrides."""
    watch_interval_seconds: int = _DEFAULT_WATCH_INTERVAL_SECONDS
    expiry_warning_days: int = _DEFAULT_EXPIRY_WARNING_DAYS
    expiry_job_interval_seconds: int = _DEFAULT_EXPIRY_JOB_INTERVAL_SECONDS
    limit_warning_ratio: float = _DEFAULT_LIMIT_WARNING_RATIO
    topic_prefix: str = ""

    def __post_init__(self):
        if self.watch_interval_seconds <= 0:
            raise ValueError("watch_interval_seconds must be positive")
        if self.expiry_warning_days < 0:
            raise ValueError("expiry_warning_days must not be negative")
        if not 0 < self.limit_warning_ratio <= 1:
            raise ValueError("limit_warning_ratio must be in (0, 1]")


def _env_int(name: str, fallback: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return fallback
    try:
        return int(raw)
    except ValueError:
        logger.warning("Ignoring non-integer environment override", extra={
            "variable": name, "value": raw,
        })
        return fallback


class LicensePolicyLoader:
    """
    Thread-safe singleton loader for config/license_policy.yml.
    """

    _instance: Optional["LicensePolicyLoader"] = None
    _lock = Lock()

    def __new__(cls, config_path: Optional[str] = None):
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = super().__new__(cls)
                    cls._instance._initialized = False
        return cls._instance

    def __init__(self, config_path: Optional[str] = None):
        if self._initialized:
            return

        self._config_path = config_path or os.getenv("LICENSE_POLICY_PATH")
        self._raw: Dict[str, Any] = {}
        self._load_lock = Lock()

        self._load()
        self._initialized = True

    def _resolve_path(self) -> Path:
        if self._config_path:
            return Path(self._config_path)

        candidates = [
            Path(__file__).parent.parent.parent.parent / "config" / "license_policy.yml",
            Path(os.getcwd()) / "config" / "license_policy.yml",
            Path(os.getcwd()) / ".." / "config" / "license_policy.yml",
        ]

        for p in candidates:
            resolved = p.resolve()
            if resolved.exists():
                return resolved

        raise FileNotFoundError(
            f"license_policy.yml not found in: {[str(p) for p in candidates]}"
        )

    def _load(self) -> None:
        with self._load_lock:
            try:
                path = self._resolve_path()
                logger.info("Loading license policy from %s", path)

                with open(path, "r") as f:
                    self._raw = yaml.safe_load(f) or {}
            except FileNotFoundError:
                logger.warning("license_policy.yml not found, using fallback defaults")
                self._raw = {}

    def reload(self) -> None:
        """Re-read the YAML from disk."""
        self._load()

    def get_policy(self) -> LicensePolicy:
        """Return the policy with environment overrides applied."""
        watcher = self._raw.get("watcher", {}) or {}
        expiry = self._raw.get("expiry_warning", {}) or {}
        push = self._raw.get("push", {}) or {}

        return LicensePolicy(
            watch_interval_seconds=_env_int(
                "LICENSE_WATCH_INTERVAL",
                int(watcher.get("interval_seconds", _DEFAULT_WATCH_INTERVAL_SECONDS)),
            ),
            expiry_warning_days=_env_int(
                "LICENSE_EXPIRY_WARNING_DAYS",
                int(expiry.get("days", _DEFAULT_EXPIRY_WARNING_DAYS)),
            ),
            expiry_job_interval_seconds=_env_int(
                "LICENSE_EXPIRY_JOB_INTERVAL",
                int(expiry.get("job_interval_seconds", _DEFAULT_EXPIRY_JOB_INTERVAL_SECONDS)),
            ),
            limit_warning_ratio=float(
                self._raw.get("limit_warning_ratio", _DEFAULT_LIMIT_WARNING_RATIO)
            ),
            topic_prefix=str(push.get("topic_prefix", "") or ""),
        )


def get_license_policy_loader(
    config_path: Optional[str] = None,
) -> LicensePolicyLoader:
    """Return the singleton LicensePolicyLoader."""
    return LicensePolicyLoader(config_path)


def get_license_policy() -> LicensePolicy:
    """Convenience accessor for the resolved policy."""
    return get_license_policy_loader().get_policy()


def reset_license_policy_loader() -> None:
    """Reset singleton (for tests only)."""
    LicensePolicyLoader._instance = None
