"""Configuration for sessions, the solver and synthesis.

Configuration can be given programmatically or in TOML, either in a
``lattice.toml`` file:

```toml
[lattice]
preset = "default"  # or "thorough", "minimal"

[lattice.solver]
fuzzy_limit = 10
max_logged_items = 5

[lattice.synthesis]
max_extractors = 5
max_alternation = 10
reuse_top_k = 3
knowledge_base = true
cache_size = 1000

[lattice.session]
strict_types = false
check_types = true
```

or under ``[tool.lattice]`` in ``pyproject.toml`` with the same keys.

Usage:
    from lattice.config import LatticeConfigLoader, load_config

    # Load from TOML
    config = load_config(Path("lattice.toml"))

    # Or programmatically
    config = LatticeConfigLoader().with_preset("thorough").with_strict_types().build()
"""

from __future__ import annotations

import logging
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "lattice.toml"


@dataclass
class SolverConfig:
    """Configuration for the solver."""

    fuzzy_limit: int = 10  # Default result count for fuzzy_search
    max_logged_items: int = 5  # Sample size in trace logs

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "fuzzy_limit": self.fuzzy_limit,
            "max_logged_items": self.max_logged_items,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SolverConfig:
        """Create from dictionary."""
        return cls(
            fuzzy_limit=data.get("fuzzy_limit", 10),
            max_logged_items=data.get("max_logged_items", 5),
        )


@dataclass
class SynthesisSettings:
    """Configuration for synthesis and reuse."""

    max_extractors: int = 5
    max_alternation: int = 10  # Largest positive set for literal alternation
    reuse_top_k: int = 3  # Knowledge-base entries re-verified before synthesis
    knowledge_base: bool = True
    cache_size: int = 1000

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "max_extractors": self.max_extractors,
            "max_alternation": self.max_alternation,
            "reuse_top_k": self.reuse_top_k,
            "knowledge_base": self.knowledge_base,
            "cache_size": self.cache_size,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SynthesisSettings:
        """Create from dictionary."""
        return cls(
            max_extractors=data.get("max_extractors", 5),
            max_alternation=data.get("max_alternation", 10),
            reuse_top_k=data.get("reuse_top_k", 3),
            knowledge_base=data.get("knowledge_base", True),
            cache_size=data.get("cache_size", 1000),
        )


@dataclass
class SessionConfig:
    """Configuration for a document session."""

    check_types: bool = True  # Run inference before solving
    strict_types: bool = False  # Reject instead of warn on inference failure

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "check_types": self.check_types,
            "strict_types": self.strict_types,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SessionConfig:
        """Create from dictionary."""
        return cls(
            check_types=data.get("check_types", True),
            strict_types=data.get("strict_types", False),
        )


@dataclass
class LatticeConfig:
    """Complete configuration."""

    preset: str | None = "default"
    solver: SolverConfig = field(default_factory=SolverConfig)
    synthesis: SynthesisSettings = field(default_factory=SynthesisSettings)
    session: SessionConfig = field(default_factory=SessionConfig)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary (for TOML serialization)."""
        return {
            "preset": self.preset,
            "solver": self.solver.to_dict(),
            "synthesis": self.synthesis.to_dict(),
            "session": self.session.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> LatticeConfig:
        """Create from dictionary (from TOML).

        A preset is applied first; explicit sections override it key by key.
        """
        config = cls.from_preset(data["preset"]) if "preset" in data else cls()

        if "solver" in data:
            merged = {**config.solver.to_dict(), **data["solver"]}
            config.solver = SolverConfig.from_dict(merged)
        if "synthesis" in data:
            merged = {**config.synthesis.to_dict(), **data["synthesis"]}
            config.synthesis = SynthesisSettings.from_dict(merged)
        if "session" in data:
            merged = {**config.session.to_dict(), **data["session"]}
            config.session = SessionConfig.from_dict(merged)

        return config

    @classmethod
    def from_preset(cls, preset_name: str) -> LatticeConfig:
        """Create from a preset."""
        if preset_name not in PRESETS:
            available = ", ".join(sorted(PRESETS))
            raise ValueError(f"Unknown preset: {preset_name}. Available: {available}")
        data = PRESETS[preset_name]
        return cls(
            preset=preset_name,
            solver=SolverConfig.from_dict(data.get("solver", {})),
            synthesis=SynthesisSettings.from_dict(data.get("synthesis", {})),
            session=SessionConfig.from_dict(data.get("session", {})),
        )


PRESETS: dict[str, dict[str, Any]] = {
    "default": {},
    # More candidates and reuse, for documents with irregular formats
    "thorough": {
        "synthesis": {"max_extractors": 10, "max_alternation": 20, "reuse_top_k": 5},
        "solver": {"max_logged_items": 10},
    },
    # No reuse across requests; every synthesis starts fresh
    "minimal": {
        "synthesis": {"max_extractors": 1, "reuse_top_k": 0, "knowledge_base": False},
        "session": {"check_types": False},
    },
}


class LatticeConfigLoader:
    """Fluent builder for configuration."""

    def __init__(self) -> None:
        self._config = LatticeConfig()

    def with_preset(self, preset_name: str) -> LatticeConfigLoader:
        """Start from a preset."""
        self._config = LatticeConfig.from_preset(preset_name)
        return self

    def with_fuzzy_limit(self, limit: int) -> LatticeConfigLoader:
        self._config.solver.fuzzy_limit = limit
        return self

    def with_max_logged_items(self, count: int) -> LatticeConfigLoader:
        self._config.solver.max_logged_items = count
        return self

    def with_max_extractors(self, count: int) -> LatticeConfigLoader:
        self._config.synthesis.max_extractors = count
        return self

    def with_knowledge_base(self, enabled: bool = True, top_k: int | None = None) -> LatticeConfigLoader:
        """Enable/disable knowledge-base reuse."""
        self._config.synthesis.knowledge_base = enabled
        if top_k is not None:
            self._config.synthesis.reuse_top_k = top_k
        return self

    def with_strict_types(self, enabled: bool = True) -> LatticeConfigLoader:
        """Reject turns that fail type inference instead of warning."""
        self._config.session.strict_types = enabled
        return self

    def build(self) -> LatticeConfig:
        """Build the configuration."""
        return self._config


def _section(data: dict[str, Any], path: Path) -> dict[str, Any] | None:
    if path.name == "pyproject.toml":
        return data.get("tool", {}).get("lattice")
    return data.get("lattice")


def load_config(path: Path | None = None) -> LatticeConfig:
    """Load configuration from a TOML file.

    Args:
        path: ``lattice.toml``, ``pyproject.toml`` or a directory holding
            one of them (``lattice.toml`` wins). None means the current
            directory.

    Returns:
        LatticeConfig; defaults when no file or section is found
    """
    path = Path.cwd() if path is None else path
    if path.is_dir():
        for name in (CONFIG_FILENAME, "pyproject.toml"):
            candidate = path / name
            if candidate.exists():
                loaded = load_config(candidate)
                if name == CONFIG_FILENAME or loaded.to_dict() != LatticeConfig().to_dict():
                    return loaded
        return LatticeConfig()

    if not path.exists():
        return LatticeConfig()

    with open(path, "rb") as f:
        data = tomllib.load(f)

    section = _section(data, path)
    if section is None:
        return LatticeConfig()

    logger.debug("Loaded configuration from %s", path)
    return LatticeConfig.from_dict(section)


def list_available_presets() -> list[str]:
    """List available presets."""
    return sorted(PRESETS)


__all__ = [
    "CONFIG_FILENAME",
    "PRESETS",
    "LatticeConfig",
    "LatticeConfigLoader",
    "SessionConfig",
    "SolverConfig",
    "SynthesisSettings",
    "list_available_presets",
    "load_config",
]
