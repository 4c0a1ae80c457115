"""Runtime settings for devgate.

Values come from three layers, later ones winning: the hard defaults in
:mod:`devgate.config.const`, an optional ``devgate.yaml`` inside the base
directory, and ``DEVGATE_*`` environment variables.
"""
from __future__ import annotations

from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Mapping
import os

import yaml

from devgate.config import const

__all__ = ["Settings", "load_settings", "config_path", "SettingsError"]

_ENV_PREFIX = "DEVGATE_"


class SettingsError(RuntimeError):
    """Raised when the settings file cannot be parsed."""


def _default_base_dir() -> Path:
    return Path("~/.devgate").expanduser()


def _default_tiers() -> list[tuple[float | None, float]]:
    return list(const.POLL_TIERS)


@dataclass(slots=True)
class Settings:
    base_dir: Path = field(default_factory=_default_base_dir)
    api_base: str = const.API_BASE
    request_timeout: float = const.REQUEST_TIMEOUT
    status_timeout: float = const.STATUS_TIMEOUT
    poll_tiers: list[tuple[float | None, float]] = field(default_factory=_default_tiers)
    poll_budget: float = const.POLL_BUDGET
    integrity_policy: str = const.INTEGRITY_POLICY
    log_level: str = "INFO"
    # skip the keyring and keep the record in the plain fallback file
    plain_storage: bool = False

    # --- paths ---
    def state_dir(self) -> Path:
        return (self.base_dir / "state").resolve()

    def logs_dir(self) -> Path:
        return (self.base_dir / "logs").resolve()

    def store_path(self) -> Path:
        return self.state_dir() / const.STORE_FILENAME

    def fallback_store_path(self) -> Path:
        return self.state_dir() / const.STORE_FALLBACK_FILENAME

    def ensure_tree(self) -> None:
        for p in (self.base_dir, self.state_dir(), self.logs_dir()):
            p.mkdir(parents=True, exist_ok=True)


def config_path(base_dir: Path) -> Path:
    return base_dir / "devgate.yaml"


def _as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in {"1", "true", "yes", "on"}


def _parse_tiers(raw: Any) -> list[tuple[float | None, float]]:
    tiers: list[tuple[float | None, float]] = []
    for item in raw or []:
        if isinstance(item, Mapping):
            until = item.get("until")
            interval = item.get("interval")
        else:
            until, interval = item
        tiers.append((None if until is None else float(until), float(interval)))
    if not tiers:
        raise SettingsError("poll_tiers must contain at least one tier")
    return tiers


def _apply(settings: Settings, data: Mapping[str, Any]) -> None:
    known = {f.name for f in fields(Settings)}
    for key, value in data.items():
        if key not in known or value is None:
            continue
        if key == "base_dir":
            settings.base_dir = Path(str(value)).expanduser()
        elif key in {"request_timeout", "status_timeout", "poll_budget"}:
            setattr(settings, key, float(value))
        elif key == "poll_tiers":
            settings.poll_tiers = _parse_tiers(value)
        elif key == "plain_storage":
            settings.plain_storage = _as_bool(value)
        else:
            setattr(settings, key, str(value))


def _from_env(environ: Mapping[str, str]) -> dict[str, Any]:
    data: dict[str, Any] = {}
    for f in fields(Settings):
        if f.name == "poll_tiers":
            continue
        raw = environ.get(_ENV_PREFIX + f.name.upper())
        if raw:
            data[f.name] = raw
    return data


def load_settings(environ: Mapping[str, str] | None = None) -> Settings:
    """Build :class:`Settings` from defaults, ``devgate.yaml`` and the environment."""

    env = os.environ if environ is None else environ
    env_data = _from_env(env)
    settings = Settings()
    if "base_dir" in env_data:
        settings.base_dir = Path(env_data["base_dir"]).expanduser()

    path = config_path(settings.base_dir)
    if path.exists():
        try:
            data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
        except yaml.YAMLError as exc:
            raise SettingsError(f"Failed to parse {path}: {exc}") from exc
        if not isinstance(data, dict):
            raise SettingsError(f"{path} must contain a mapping")
        # the base directory is fixed once the file has been found
        data.pop("base_dir", None)
        _apply(settings, data)

    _apply(settings, env_data)
    return settings
