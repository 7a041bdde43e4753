from __future__ import annotations

from enum import StrEnum, auto

from pydantic_settings import SettingsConfigDict

from duedate.service.configuration.service_configuration import (
    ServiceConfiguration,
)


class LogLevel(StrEnum):
    """Log levels, with values the logging module accepts as they are."""

    @staticmethod
    def _generate_next_value_(
        name: str, start: int, count: int, last_values: list[str]
    ) -> str:
        # auto() would give the lower-cased name, logging wants it upper-cased.
        return name.upper()

    debug = auto()
    info = auto()
    warning = auto()
    error = auto()


class LoggingConfiguration(ServiceConfiguration):
    level: LogLevel = LogLevel.info
    verbose_level: LogLevel = LogLevel.warning

    # Emit one JSON document per log record instead of plain text lines.
    json_format: bool = True

    model_config = SettingsConfigDict(env_prefix="DUEDATE_LOG_")
