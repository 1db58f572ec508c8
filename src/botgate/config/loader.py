"""Configuration loader for the YAML bot config."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import yaml

from .models import BotConfig

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = "botgate.yaml"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


class ConfigLoader:
    def __init__(self, config_path: Optional[str | Path] = None):
        if config_path is None:
            self._config_path = Path.cwd() / "config" / DEFAULT_CONFIG_FILE
        else:
            self._config_path = Path(config_path)
        self._config: Optional[BotConfig] = None

    @property
    def config_path(self) -> Path:
        return self._config_path

    def _load_yaml(self) -> dict:
        if not self._config_path.exists():
            logger.warning("Config file not found: %s, using defaults", self._config_path)
            return {}

        with open(self._config_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)

        if data is not None and not isinstance(data, dict):
            raise ValueError(f"{self._config_path} must contain a mapping at the top level")
        return data or {}

    def load(self, force_reload: bool = False) -> BotConfig:
        if self._config is not None and not force_reload:
            return self._config

        data = self._load_yaml()
        self._config = BotConfig(**data)
        logger.info("Loaded bot config from %s", self._config_path)
        return self._config

    @property
    def config(self) -> BotConfig:
        return self.load()


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT)
