import time
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import toml

from udiskr.shared import config_template
from udiskr.shared.path_handler import PathHandler

HINT_SUFFIXES = ("_hint", "_section_hint")


class ConfigHandler:
    """
    Loads config.toml, fills in missing keys from the defaults and gives
    path based access to settings.
    """

    def __init__(self, logger, config_file: Optional[Union[str, Path]] = None):
        """
        Args:
            logger: Logger used for load and save diagnostics.
            config_file: Explicit config path; defaults to
                $XDG_CONFIG_HOME/udiskr/config.toml.
        """
        self.logger = logger
        self.default_config = config_template.default_config
        self.config_file = (
            Path(config_file).expanduser()
            if config_file
            else PathHandler().get_config_file()
        )
        self._load_successful: bool = False
        self.config_data: Dict[str, Any] = {}
        self.config_data = self.load_config()

    def _strip_hints(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Recursively removes documentation keys ending with '_hint' so only
        real settings are written to TOML.
        """
        stripped_data = {}
        for key, value in data.items():
            if key.endswith(HINT_SUFFIXES):
                continue
            if isinstance(value, dict):
                stripped_data[key] = self._strip_hints(value)
            else:
                stripped_data[key] = value
        return stripped_data

    @property
    def default_config_stripped(self) -> Dict[str, Any]:
        return self._strip_hints(self.default_config)

    def _recursive_merge(
        self,
        user_config: Dict[str, Any],
        default_config: Dict[str, Any],
    ) -> bool:
        """
        Recursively merges missing keys from `default_config` into `user_config`.
        Returns:
            True if any key was added.
        """
        write_back_needed = False
        for key, default_value in default_config.items():
            if key not in user_config:
                user_config[key] = default_value
                write_back_needed = True
            elif isinstance(default_value, dict) and isinstance(
                user_config.get(key), dict
            ):
                if self._recursive_merge(user_config[key], default_value):
                    write_back_needed = True
        return write_back_needed

    def save_config(self) -> bool:
        """Writes the current state of self.config_data to the TOML file."""
        if not self._load_successful:
            self.logger.warning(
                f"Skipping configuration save: {self.config_file} failed to load. "
                "Please fix it manually."
            )
            return False
        try:
            self.config_file.parent.mkdir(parents=True, exist_ok=True)
            with open(self.config_file, "w") as f:
                toml.dump(self.config_data, f)
            self.logger.info(f"Configuration saved to {self.config_file}.")
            return True
        except OSError as e:
            self.logger.error(f"Failed to save configuration to {self.config_file}: {e}")
            return False

    def load_config(self) -> Dict[str, Any]:
        """
        Loads the configuration from file, or uses defaults if missing/corrupt.
        A missing file is created from the defaults; a corrupt one is left
        untouched.
        """
        config_from_file: Dict[str, Any] = {}
        file_must_be_created = not self.config_file.exists()
        load_succeeded = False
        if file_must_be_created:
            self.logger.info("Config file is missing. Will apply defaults and create.")
            load_succeeded = True
        else:
            max_retries = 3
            retry_delay_seconds = 0.1
            for attempt in range(max_retries):
                try:
                    with open(self.config_file, "r") as f:
                        config_from_file = toml.load(f)
                    load_succeeded = True
                    break
                except (OSError, toml.TomlDecodeError) as e:
                    self.logger.error(
                        f"Error loading config file on attempt {attempt + 1}: {e}. Retrying..."
                    )
                    time.sleep(retry_delay_seconds)
            else:
                self.logger.error(
                    "Failed to load config file after all retries. Using default "
                    "configuration and skipping file save to preserve user data."
                )
                config_from_file = {}
        self._load_successful = load_succeeded
        self._recursive_merge(config_from_file, self.default_config_stripped)
        if file_must_be_created:
            self.config_data = config_from_file
            self.save_config()
        self.logger.debug("Configuration loaded and merged with defaults.")
        return config_from_file

    def get_root_setting(self, key_path: List[str], default_value: Any = None) -> Any:
        """
        Traverses the configuration dict to retrieve a value.
        Args:
            key_path: List of keys, e.g. ['notifications', 'expire_timeout'].
            default_value: Value to return if the path is not found.
        """
        current_data = self.config_data
        for i, key in enumerate(key_path):
            if isinstance(current_data, dict) and key in current_data:
                current_data = current_data[key]
            else:
                self.logger.debug(
                    f"Missing configuration key at path: {' -> '.join(key_path[: i + 1])}. "
                    f"Using default value: {default_value}"
                )
                return default_value
        return current_data
