"""Config dependency for FastAPI."""

from __future__ import annotations

import os
from pathlib import Path

from ..config import Config
from ..constants import CONFIG_PATH

__all__ = ["ConfigDependency", "config_dependency"]


class ConfigDependency:
    """Load the dirauth configuration on first use and cache it.

    The path defaults to ``DIRAUTH_CONFIG_PATH`` if set, or otherwise the
    standard location. The test suite and the command-line interface may
    point it at another file with `set_config_path`, which also reloads the
    configuration and reconfigures logging.
    """

    def __init__(self) -> None:
        self._config_path = Path(os.getenv("DIRAUTH_CONFIG_PATH", CONFIG_PATH))
        self._config: Config | None = None

    async def __call__(self) -> Config:
        """Return the configuration, loading it if necessary."""
        return self.config()

    @property
    def config_path(self) -> Path:
        """Path from which the configuration is loaded."""
        return self._config_path

    def config(self) -> Config:
        """Return the configuration, loading it if necessary.

        Use this instead of calling the dependency from code that is not
        async.
        """
        if not self._config:
            self._load()
        assert self._config
        return self._config

    def set_config_path(self, path: Path) -> None:
        """Switch to a different configuration file and load it.

        Parameters
        ----------
        path
            Path to the new configuration file.
        """
        self._config_path = path
        self._load()

    def _load(self) -> None:
        self._config = Config.from_file(self._config_path)
        self._config.configure_logging()


config_dependency = ConfigDependency()
"""The dependency that will return the current configuration."""
