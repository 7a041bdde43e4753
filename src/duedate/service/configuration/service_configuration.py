from __future__ import annotations

from typing import Any

from pydantic import ValidationError
from pydantic_core import ErrorDetails
from pydantic_settings import BaseSettings, SettingsConfigDict

from duedate.core.exceptions import CannotLoadConfiguration


class ServiceConfiguration(BaseSettings):
    """
    Base class for the engine's configuration. Each subclass declares its
    settings as pydantic fields, which are loaded from environment variables
    (or a .env file) named with the subclass's env_prefix.
    """

    model_config = SettingsConfigDict(
        # Each sub-config will have its own prefix
        env_prefix="DUEDATE_",
        # Strip whitespace from all strings
        str_strip_whitespace=True,
        # Settings are loaded once from the environment and never changed.
        frozen=True,
        # Allow env vars to be loaded from a .env file in the working directory
        env_file=".env",
        # Nested settings will be loaded from environment variables with this delimiter.
        env_nested_delimiter="__",
        # Ignore extra fields in the environment
        extra="ignore",
    )

    def __init__(self, *args: Any, **kwargs: Any):
        try:
            super().__init__(*args, **kwargs)
        except ValidationError as error_exception:
            # Report the environment variables to fix, rather than the
            # pydantic field locations.
            problems = "".join(
                f"\n  {self._describe_error(error)}"
                for error in error_exception.errors()
            )
            raise CannotLoadConfiguration(
                f"Error loading settings from environment:{problems}"
            ) from error_exception

    @classmethod
    def _describe_error(cls, error: ErrorDetails) -> str:
        location = error["loc"]
        if not location:
            # Model validators don't point at a single setting.
            return error["msg"]

        delimiter = cls.model_config.get("env_nested_delimiter") or "__"
        name = str(location[0])
        if name in cls.model_fields:
            name = f"{cls.model_config.get('env_prefix')}{name}"
        env_var = delimiter.join(str(part).upper() for part in (name, *location[1:]))
        return f"{env_var}:  {error['msg']}"
