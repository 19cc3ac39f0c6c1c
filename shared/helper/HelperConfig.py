"""Central configuration helper for the vector store bridge."""

import logging
import os
from collections.abc import Mapping

from shared.clients.vectorstore.exceptions import ConfigurationError


class HelperConfig:
    """Central configuration helper. Reads all settings from environment variables.

    An explicit mapping can be passed instead of the process environment, so
    that each client instance owns its configuration and tests do not leak
    settings into each other.
    """

    def __init__(self, logger: logging.Logger, environ: Mapping[str, str] | None = None) -> None:
        self._logger = logger
        self._environ = environ

    def _read_raw(self, key: str) -> str | None:
        """Return the stripped raw value for a key, treating empty and whitespace-only values as unset."""
        source = self._environ if self._environ is not None else os.environ
        raw = source.get(key.upper())
        if raw is None or not raw.strip():
            return None
        return raw.strip()

    def get_string_val(self, key: str, default: str | None = None) -> str:
        """Read a string setting.

        Args:
            key (str): Setting name (case-insensitive).
            default (str | None): Fallback value if the setting is not set.

        Returns:
            str: The resolved value.

        Raises:
            ConfigurationError: If the setting is not set and no default is provided.
        """
        val = self._read_raw(key)
        if val is None and default is None:
            raise ConfigurationError(f"Environment variable '{key.upper()}' is not set.")
        return val if val is not None else default

    def get_number_val(self, key: str, default: float | int | None = None) -> float | int:
        """Read a numeric setting.

        Args:
            key (str): Setting name (case-insensitive).
            default (float | int | None): Fallback value if the setting is not set.

        Returns:
            float | int: The resolved numeric value.

        Raises:
            ConfigurationError: If the setting is not set and no default is provided,
                or if the value cannot be parsed as a number.
        """
        raw = self._read_raw(key)
        if raw is None:
            if default is None:
                raise ConfigurationError(f"Environment variable '{key.upper()}' is not set.")
            return default
        try:
            return int(raw) if "." not in raw else float(raw)
        except ValueError:
            raise ConfigurationError(f"Environment variable '{key.upper()}' is not a valid number: '{raw}'.")

    def get_bool_val(self, key: str, default: bool | None = None) -> bool:
        """Read a boolean setting ("true", "1" and "yes" are truthy)."""
        raw = self._read_raw(key)
        if raw is None:
            if default is None:
                raise ConfigurationError(f"Environment variable '{key.upper()}' is not set.")
            return default
        return raw.lower() in ("true", "1", "yes")

    def get_list_val(self, key: str, default: list[str] | None = None, separator: str = ",", element_type: type = str) -> list:
        """Read a list setting written as "[elem1,elem2,...]".

        Args:
            key (str): Setting name (case-insensitive).
            default (list[str] | None): Fallback value if the setting is not set.
            separator (str): The delimiter between elements.
            element_type (type): The type to which each element should be cast.

        Returns:
            list: The resolved list of elements.

        Raises:
            ConfigurationError: If the setting is missing without default, malformed,
                or contains elements that cannot be cast.
        """
        raw_val = self._read_raw(key)
        if raw_val is None:
            if default is None:
                raise ConfigurationError(f"Environment variable '{key.upper()}' is not set.")
            return default
        if not raw_val.startswith("[") or not raw_val.endswith("]"):
            raise ConfigurationError(
                f"Environment variable '{key.upper()}' must be in the format '[elem1{separator}elem2{separator}...]'. Got: '{raw_val}'"
            )
        elements = [v.strip() for v in raw_val[1:-1].split(separator) if v.strip()]
        try:
            return [element_type(elem) for elem in elements]
        except ValueError as e:
            raise ConfigurationError(
                f"Environment variable '{key.upper()}' contains invalid elements: {e}. Type set to {element_type.__name__}. Got: '{raw_val}'"
            )

    def get_logger(self) -> logging.Logger:
        """Return the application logger.

        Returns:
            logging.Logger: The configured logger instance.
        """
        return self._logger
