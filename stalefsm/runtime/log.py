# stalefsm/runtime/log.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class LoggingSettings(BaseSettings):
    """
    Where and how loudly machine logs are written.

    Read from STALEFSM_LOG_DIR, STALEFSM_STDOUT_LOGGING and STALEFSM_LOG_LEVEL.
    """

    log_dir: Path = Field(
        default=Path("test-resources") / "fsm",
        description="Directory receiving <name>.log files",
    )
    stdout_logging: bool = Field(
        default=False,
        description="Also log to the console",
    )
    log_level: str = Field(
        default="INFO",
        description="Logging level name",
    )

    model_config = SettingsConfigDict(
        env_prefix="STALEFSM_",
        extra="ignore",
        frozen=True,
    )

    @field_validator("log_level")
    @classmethod
    def known_level(cls, value: str) -> str:
        name = value.upper()
        if not isinstance(logging.getLevelName(name), int):
            raise ValueError(f"unknown log level {value!r}")
        return name

    @property
    def level(self) -> int:
        return logging.getLevelName(self.log_level)


def configure_logging(name: str, settings: Optional[LoggingSettings] = None) -> logging.Logger:
    """
    Build the logger a machine run writes to: a file handler on
    ``<log_dir>/<name>.log`` plus an optional console handler. Calling it
    again for the same name returns the already configured logger.

    :param name: Run name; used for the logger and the log file.
    :param settings: Defaults to settings read from the environment.
    """
    logger = logging.getLogger(f"stalefsm.{name}")
    if getattr(logger, "_stalefsm_configured", False):
        return logger

    settings = settings or LoggingSettings()
    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    settings.log_dir.mkdir(parents=True, exist_ok=True)
    file_handler = logging.FileHandler(settings.log_dir / f"{name}.log", encoding="utf-8")
    file_handler.setFormatter(formatter)
    logger.addHandler(file_handler)

    if settings.stdout_logging:
        console = logging.StreamHandler()
        console.setFormatter(formatter)
        logger.addHandler(console)

    logger.setLevel(settings.level)
    logger._stalefsm_configured = True
    return logger
