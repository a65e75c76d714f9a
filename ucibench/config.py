# Benchmark configuration
"""
Configuration management for ucibench.
Handles the engine under test, search limits, timeouts and diff thresholds.
"""

import logging
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from ucibench.diff import DiffThresholds
from ucibench.metrics import SearchLimit
from ucibench.utils.error_utils import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_SNAPSHOT_PATH = "./bench_snapshot.json"
DEFAULT_DEPTH = 10


@dataclass
class EngineConfig:
    """The UCI engine under test."""
    path: Optional[str] = None
    options: Dict[str, Any] = None
    handshake_timeout: float = 10.0
    quit_grace: float = 2.0

    def __post_init__(self):
        if self.options is None:
            self.options = {}


@dataclass
class BenchConfig:
    """Main benchmark configuration."""
    engine: EngineConfig = field(default_factory=EngineConfig)
    depth: Optional[int] = DEFAULT_DEPTH
    movetime_ms: Optional[int] = None
    position_timeout: float = 60.0
    suite: Optional[str] = None
    snapshot_path: str = DEFAULT_SNAPSHOT_PATH
    thresholds: DiffThresholds = field(default_factory=DiffThresholds)
    score_tolerance: int = 0
    log_dir: Optional[str] = None

    def search_limit(self) -> SearchLimit:
        """Time budget wins over depth when both are configured."""
        if self.movetime_ms is not None:
            return SearchLimit.movetime(self.movetime_ms)
        return SearchLimit.fixed_depth(DEFAULT_DEPTH if self.depth is None else self.depth)


class ConfigManager:
    """Loads and saves benchmark configurations as YAML."""

    @staticmethod
    def load_config(config_path: str) -> BenchConfig:
        """Load benchmark configuration from a YAML file."""
        try:
            with open(config_path, "r") as f:
                data = yaml.safe_load(f) or {}
        except OSError as e:
            raise ConfigurationError(f"Cannot read config {config_path}: {e}") from e
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {config_path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigurationError(f"{config_path}: top level must be a mapping")

        try:
            config = ConfigManager.from_dict(data)
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"{config_path}: {e}") from e
        logger.debug(f"Loaded configuration from {config_path}")
        return config

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> BenchConfig:
        known = {"engine", "search", "suite", "snapshot", "diff", "logging"}
        unknown = set(data) - known
        if unknown:
            logger.warning(f"Ignoring unknown configuration sections: {', '.join(sorted(unknown))}")

        engine_data = data.get("engine") or {}
        engine = EngineConfig(
            path=engine_data.get("path"),
            options=engine_data.get("options") or {},
            handshake_timeout=float(engine_data.get("handshake_timeout", 10.0)),
            quit_grace=float(engine_data.get("quit_grace", 2.0)),
        )

        search = data.get("search") or {}
        diff = data.get("diff") or {}
        config = BenchConfig(
            engine=engine,
            depth=search.get("depth", DEFAULT_DEPTH),
            movetime_ms=search.get("movetime_ms"),
            position_timeout=float(search.get("position_timeout", 60.0)),
            suite=data.get("suite"),
            snapshot_path=data.get("snapshot") or DEFAULT_SNAPSHOT_PATH,
            thresholds=DiffThresholds.from_dict(diff.get("thresholds")),
            score_tolerance=int(diff.get("score_tolerance", 0)),
            log_dir=(data.get("logging") or {}).get("log_dir"),
        )
        # Validates depth/movetime early.
        config.search_limit()
        if config.position_timeout <= 0:
            raise ValueError("search.position_timeout must be positive")
        return config

    @staticmethod
    def to_dict(config: BenchConfig) -> Dict[str, Any]:
        return {
            "engine": asdict(config.engine),
            "search": {
                "depth": config.depth,
                "movetime_ms": config.movetime_ms,
                "position_timeout": config.position_timeout,
            },
            "suite": config.suite,
            "snapshot": config.snapshot_path,
            "diff": {
                "thresholds": config.thresholds.to_dict(),
                "score_tolerance": config.score_tolerance,
            },
            "logging": {"log_dir": config.log_dir},
        }

    @staticmethod
    def save_config(config: BenchConfig, output_path: str):
        """Save benchmark configuration to a YAML file."""
        Path(output_path).parent.mkdir(parents=True, exist_ok=True)
        with open(output_path, "w") as f:
            yaml.dump(ConfigManager.to_dict(config), f, default_flow_style=False, indent=2, sort_keys=False)

    @staticmethod
    def create_default_config() -> BenchConfig:
        """Create a default configuration for Stockfish on PATH."""
        return BenchConfig(engine=EngineConfig(path="stockfish", options={"Threads": 1, "Hash": 16}))
