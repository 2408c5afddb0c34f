from __future__ import annotations

import tomllib
from dataclasses import dataclass, field
from pathlib import Path

from invmem_core.errors import ConfigError


def _load_toml(path: Path) -> dict:
    """Load a TOML file, returning empty dict if missing."""
    if not path.exists():
        return {}
    try:
        with open(path, "rb") as f:
            return tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError) as exc:
        msg = f"Cannot read config file {path}: {exc}"
        raise ConfigError(msg) from exc


def _deep_merge(base: dict, override: dict) -> dict:
    """Merge override into base (1 level deep for TOML sections)."""
    merged = dict(base)
    for key, val in override.items():
        if (
            key in merged
            and isinstance(merged[key], dict)
            and isinstance(val, dict)
        ):
            merged[key] = {**merged[key], **val}
        else:
            merged[key] = val
    return merged


@dataclass(frozen=True, slots=True)
class EngineConfig:
    storage_path: str = "./memory.db"
    min_confidence_to_apply: float = 0.45
    min_confidence_to_auto_accept: float = 0.7
    decay_on_open: bool = True

    def __post_init__(self) -> None:
        if not isinstance(self.storage_path, str) or not self.storage_path:
            msg = (
                "storage_path must be a non-empty string,"
                f" got {self.storage_path!r}"
            )
            raise ConfigError(msg)
        if not isinstance(self.decay_on_open, bool):
            msg = f"decay_on_open must be a boolean, got {self.decay_on_open!r}"
            raise ConfigError(msg)
        for name in ("min_confidence_to_apply", "min_confidence_to_auto_accept"):
            value = getattr(self, name)
            if not isinstance(value, int | float) or isinstance(value, bool):
                msg = f"{name} must be a number, got {value!r}"
                raise ConfigError(msg)
            if not 0.0 <= value <= 1.0:
                msg = f"{name} must be within [0, 1], got {value!r}"
                raise ConfigError(msg)
        if self.min_confidence_to_apply > self.min_confidence_to_auto_accept:
            msg = (
                "min_confidence_to_apply must not exceed "
                "min_confidence_to_auto_accept"
            )
            raise ConfigError(msg)


@dataclass(frozen=True, slots=True)
class LoggingConfig:
    level: str = "INFO"
    json_output: bool = False

    def __post_init__(self) -> None:
        if not isinstance(self.level, str):
            msg = f"logging level must be a string, got {self.level!r}"
            raise ConfigError(msg)
        if not isinstance(self.json_output, bool):
            msg = f"json_output must be a boolean, got {self.json_output!r}"
            raise ConfigError(msg)


@dataclass(frozen=True, slots=True)
class InvmemConfig:
    """Top-level configuration, parsed from invmem.toml."""
    engine: EngineConfig = field(default_factory=EngineConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def from_toml(
        cls, path: Path | str = "invmem.toml"
    ) -> InvmemConfig:
        return cls._from_raw(_load_toml(Path(path)))

    @classmethod
    def load(
        cls, project_dir: Path | str | None = None
    ) -> InvmemConfig:
        """Load config with global → project layering.

        Resolution order (later wins):
        1. Built-in defaults
        2. ~/.invmem/config.toml (global)
        3. .invmem/config.toml or invmem.toml (project)
        """
        global_path = Path.home() / ".invmem" / "config.toml"

        project_dir = (
            Path.cwd() if project_dir is None else Path(project_dir)
        )

        project_path = project_dir / ".invmem" / "config.toml"
        if not project_path.exists():
            project_path = project_dir / "invmem.toml"

        merged = _deep_merge(
            _load_toml(global_path), _load_toml(project_path)
        )
        return cls._from_raw(merged)

    @classmethod
    def _from_raw(cls, raw: dict) -> InvmemConfig:
        """Build InvmemConfig from a raw TOML dict."""

        def _pick(section: dict, dc: type) -> dict:
            if not isinstance(section, dict):
                msg = f"Config section for {dc.__name__} must be a table"
                raise ConfigError(msg)
            fields = dc.__dataclass_fields__
            return {
                k: v for k, v in section.items() if k in fields
            }

        return cls(
            engine=EngineConfig(**_pick(raw.get("engine", {}), EngineConfig)),
            logging=LoggingConfig(
                **_pick(raw.get("logging", {}), LoggingConfig)
            ),
        )
