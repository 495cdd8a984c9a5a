"""Environment configuration access for the canvas coach bridge."""

import logging
import os
from typing import Any


class HelperConfig:
    """Reads all settings from environment variables.

    Every getter treats an unset or blank variable as missing: the default is
    returned if one is given, otherwise a ValueError names the variable.
    """

    def __init__(self, logger: logging.Logger) -> None:
        self._logger = logger

    ##########################################
    ################ GETTER ##################
    ##########################################

    def get_string_val(self, key: str, default: str | None = None) -> str:
        raw = self._get_raw(key)
        if raw is None:
            return self._get_default(key, default)
        return raw

    def get_number_val(self, key: str, default: float | int | None = None) -> float | int:
        """Read an int, or a float if the value contains a dot.

        Raises:
            ValueError: If the variable is missing without default, or not a number.
        """
        raw = self._get_raw(key)
        if raw is None:
            return self._get_default(key, default)
        try:
            return float(raw) if "." in raw else int(raw)
        except ValueError:
            raise ValueError(f"Environment variable '{key.upper()}' is not a valid number: '{raw}'.")

    def get_int_val(self, key: str, default: int | None = None, minimum: int | None = None) -> int:
        """Read a whole number, optionally enforcing a lower bound.

        Args:
            key (str): Environment variable name (case-insensitive).
            default (int | None): Fallback value if the variable is not set.
            minimum (int | None): Smallest accepted value.

        Raises:
            ValueError: If the value is missing, not a whole number or below the minimum.
        """
        val = self.get_number_val(key, default=default)
        if int(val) != val:
            raise ValueError(f"Environment variable '{key.upper()}' must be a whole number, got {val}.")
        val = int(val)
        if minimum is not None and val < minimum:
            raise ValueError(f"Environment variable '{key.upper()}' must be >= {minimum}, got {val}.")
        return val

    def get_bool_val(self, key: str, default: bool | None = None) -> bool:
        """Values "true", "1" and "yes" (any case) are True, everything else is False."""
        raw = self._get_raw(key)
        if raw is None:
            return self._get_default(key, default)
        return raw.lower() in ("true", "1", "yes")

    def get_list_val(self, key: str, default: list[str] | None = None, separator: str = ",", element_type: type = str) -> list:
        """Read a list in the form "[elem1,elem2,...]".

        Args:
            key (str): Environment variable name (case-insensitive).
            default (list[str] | None): Fallback value if the variable is not set.
            separator (str): The delimiter between elements.
            element_type (type): The type to which each element is cast.

        Raises:
            ValueError: If the variable is missing without default, lacks the brackets, or holds invalid elements.
        """
        raw = self._get_raw(key)
        if raw is None:
            return list(self._get_default(key, default))
        if not (raw.startswith("[") and raw.endswith("]")):
            raise ValueError(f"Environment variable '{key.upper()}' must be in the format '[elem1{separator}elem2{separator}...]'. Got: '{raw}'")
        try:
            return [element_type(elem.strip()) for elem in raw[1:-1].split(separator) if elem.strip()]
        except ValueError as e:
            raise ValueError(f"Environment variable '{key.upper()}' contains invalid {element_type.__name__} elements: {e}. Got: '{raw}'")

    def get_logger(self) -> logging.Logger:
        return self._logger

    ##########################################
    ############### HELPERS ##################
    ##########################################

    def _get_raw(self, key: str) -> str | None:
        raw = os.getenv(key.upper())
        if raw is None or not raw.strip():
            return None
        return raw.strip()

    def _get_default(self, key: str, default: Any) -> Any:
        if default is None:
            raise ValueError(f"Environment variable '{key.upper()}' is not set.")
        return default
