"""
Configuration Loader
Builds the request defaults from a JSON file, DUSK_* environment variables
and code, in that order of priority
"""

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from dusk.config.dusk_config import DuskConfig, ENV_VAR_MAPPING, set_config
from dusk.exceptions import ConfigError


logger = logging.getLogger(__name__)

ConfigSource = Dict[str, Any]


def parse_header_list(value: str) -> Dict[str, List[str]]:
    """
    Parse ``Name: value; Name: value`` into multi-valued headers

    A repeated name adds a value instead of replacing the first one.
    """
    headers: Dict[str, List[str]] = {}
    for entry in value.split(";"):
        if not entry.strip():
            continue
        name, sep, header_value = entry.partition(":")
        if not sep or not name.strip():
            raise ConfigError(
                f"Invalid header entry {entry.strip()!r}, expected 'Name: value'",
                code="CONFIG_PARSE_ERROR",
            )
        headers.setdefault(name.strip(), []).append(header_value.strip())
    return headers


class ConfigLoader:
    """
    ConfigLoader class
    Reads the sources of a DuskConfig and layers them
    """

    def from_file(self, path: Union[str, Path]) -> ConfigSource:
        """
        Load a JSON object of DuskConfig fields

        Raises:
            ConfigError: If the file is missing or is not a JSON object
        """
        file_path = Path(path).resolve()
        if not file_path.exists():
            raise ConfigError(
                f"Configuration file not found: {file_path}",
                code="CONFIG_FILE_NOT_FOUND"
            )

        try:
            with open(file_path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigError(
                f"Invalid JSON in configuration file: {file_path}",
                code="CONFIG_PARSE_ERROR"
            ) from e

        if not isinstance(data, dict):
            raise ConfigError(
                f"Configuration file must hold a JSON object: {file_path}",
                code="CONFIG_PARSE_ERROR"
            )
        return data

    def from_environment(self) -> ConfigSource:
        """Load the DUSK_* variables that are set and not empty"""
        config: ConfigSource = {}
        for env_var, key in ENV_VAR_MAPPING.items():
            value = os.environ.get(env_var)
            if not value:
                continue
            if key == "headers":
                config[key] = parse_header_list(value)
            elif key == "timeout":
                # left as text when not a number, validation reports it
                try:
                    config[key] = float(value)
                except ValueError:
                    config[key] = value
            else:
                config[key] = value
        return config

    def merge(self, *sources: ConfigSource) -> ConfigSource:
        """
        Layer sources, later ones winning

        None values never override. Headers merge by name, so a later
        source replaces the values of the names it sets and keeps the rest.
        """
        merged: ConfigSource = {}
        for source in sources:
            values = {k: v for k, v in source.items() if v is not None}
            headers = values.pop("headers", None)
            merged.update(values)
            if headers:
                merged["headers"] = {**merged.get("headers", {}), **headers}
        return merged

    def resolve(self, config: ConfigSource) -> DuskConfig:
        """
        Validate a merged source into a DuskConfig

        Raises:
            ConfigError: With one ``{"field", "message"}`` entry per invalid field
        """
        try:
            return DuskConfig(**config)
        except PydanticValidationError as e:
            errors = [
                {
                    "field": ".".join(str(part) for part in item["loc"]),
                    "message": item["msg"],
                }
                for item in e.errors()
            ]
            raise ConfigError(
                f"Invalid configuration: {e.error_count()} error(s)",
                code="CONFIG_VALIDATION_ERROR",
                details={"errors": errors},
            ) from e

    def load(
        self,
        file: Optional[Union[str, Path]] = None,
        env: bool = True,
        config: Optional[ConfigSource] = None,
        install: bool = False,
    ) -> DuskConfig:
        """
        Load, merge and resolve the configuration

        Args:
            file: JSON configuration file (optional)
            env: Whether to read the DUSK_* environment variables
            config: Programmatic values, highest priority (optional)
            install: Also make the result the default config of all requests

        Returns:
            Resolved DuskConfig
        """
        sources: List[ConfigSource] = []
        if file is not None:
            sources.append(self.from_file(file))
        if env:
            sources.append(self.from_environment())
        if config is not None:
            sources.append(config)

        resolved = self.resolve(self.merge(*sources))
        logger.debug(f"Loaded config from {len(sources)} source(s)")
        if install:
            set_config(resolved)
        return resolved
