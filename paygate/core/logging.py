"""Logging setup for the API process, the worker and the scripts."""
from __future__ import annotations

import logging.config
from pathlib import Path

import yaml  # type: ignore[import-untyped]

from paygate.core.config import Settings, get_settings

DEFAULT_CONFIG_PATH = Path(__file__).resolve().parents[2] / "configs" / "logging.yaml"

_configured = False


def configure_logging(settings: Settings | None = None, *, force: bool = False) -> None:
    """Apply the YAML logging config once per process.

    ``log_config_path`` overrides the bundled ``configs/logging.yaml``;
    ``log_level`` is applied to the ``paygate`` logger on top of it.
    """
    global _configured
    if _configured and not force:
        return

    settings = settings or get_settings()
    config_path = Path(settings.log_config_path) if settings.log_config_path else DEFAULT_CONFIG_PATH
    if config_path.exists():
        with config_path.open("r", encoding="utf-8") as config_file:
            logging.config.dictConfig(yaml.safe_load(config_file))
    else:
        logging.basicConfig(level=settings.log_level.upper())
    logging.getLogger("paygate").setLevel(settings.log_level.upper())
    _configured = True


__all__ = ["DEFAULT_CONFIG_PATH", "configure_logging"]
