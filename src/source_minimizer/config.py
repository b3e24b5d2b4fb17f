"""Configuration loading helpers for source-minimizer."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml


class ConfigurationError(ValueError):
    """Raised when the configuration cannot describe a valid minimization run."""


def _filter_kwargs(data: Dict[str, Any], *, allowed: set[str]) -> Dict[str, Any]:
    return {key: value for key, value in data.items() if key in allowed}


@dataclass(frozen=True)
class FileMapping:
    input: str
    output: str


@dataclass(frozen=True)
class StrategyConfig:
    name: str = "greedy"
    query: Optional[str] = None


@dataclass(frozen=True)
class InvariantConfig:
    name: str = "exitcode"
    command_line: Optional[str] = None
    forkserver: bool = False
    forkserver_child_timeout: int = 1
    min_return: int = 1
    max_return: Optional[int] = None
    exact_return: int = -1
    message: Optional[str] = None


@dataclass(frozen=True)
class LoggingConfig:
    dir: Optional[str] = None
    stream: bool = False


@dataclass(frozen=True)
class Config:
    """Aggregated configuration for one minimization run."""

    language: str = "python"
    charset: str = "utf-8"
    validate_nodes: bool = True
    files: Tuple[FileMapping, ...] = ()
    strategy: StrategyConfig = field(default_factory=StrategyConfig)
    invariant: InvariantConfig = field(default_factory=InvariantConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def default(cls) -> "Config":
        return cls()

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Config":
        strategy = StrategyConfig(
            **_filter_kwargs(data.get("strategy", {}), allowed=set(StrategyConfig.__annotations__.keys()))
        )
        invariant = InvariantConfig(
            **_filter_kwargs(data.get("invariant", {}), allowed=set(InvariantConfig.__annotations__.keys()))
        )
        logging_cfg = LoggingConfig(
            **_filter_kwargs(data.get("logging", {}), allowed=set(LoggingConfig.__annotations__.keys()))
        )
        files: List[FileMapping] = []
        for raw in data.get("files", []) or []:
            if not isinstance(raw, dict) or "input" not in raw:
                raise ConfigurationError("Each file entry must be a mapping with an 'input' key.")
            files.append(FileMapping(input=str(raw["input"]), output=str(raw.get("output", raw["input"]))))
        top = _filter_kwargs(data, allowed={"language", "charset", "validate_nodes"})
        return cls(
            files=tuple(files),
            strategy=strategy,
            invariant=invariant,
            logging=logging_cfg,
            **top,
        )

    @classmethod
    def load(cls, path: str | Path | None = None) -> "Config":
        """Load configuration from *path* if it exists, otherwise defaults."""

        if path is None:
            return cls.default()
        path = Path(path)
        if not path.exists():
            raise ConfigurationError(f"Configuration file {path} does not exist.")
        raw = yaml.safe_load(path.read_text()) or {}
        if not isinstance(raw, dict):
            raise ConfigurationError("Config file must contain a mapping at the top level.")
        return cls.from_dict(raw)

    def validate(self) -> None:
        """Check option combinations that do not depend on the environment."""

        if not self.files:
            raise ConfigurationError("At least one input file is required.")
        outputs = [mapping.output for mapping in self.files]
        if len(set(outputs)) != len(outputs):
            raise ConfigurationError("Output files must be distinct.")
        if self.strategy.name == "query" and not self.strategy.query:
            raise ConfigurationError("The query strategy requires a query expression.")
        if self.invariant.name in {"exitcode", "message"} and not self.invariant.command_line:
            raise ConfigurationError(f"The {self.invariant.name} invariant requires a command line.")
        if self.invariant.name == "message" and not self.invariant.message:
            raise ConfigurationError("The message invariant requires a message to look for.")
        if self.invariant.forkserver_child_timeout <= 0:
            raise ConfigurationError("Fork server child timeout must be positive.")


__all__ = [
    "Config",
    "ConfigurationError",
    "FileMapping",
    "InvariantConfig",
    "LoggingConfig",
    "StrategyConfig",
]
