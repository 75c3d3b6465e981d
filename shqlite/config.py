"""
Configuration file support for shqlite. Separated, to reduce code clutter
in the main module.

The configuration is a TOML file in which each table names a database:

    [orders]
    path = "~/data/orders.db"
    history = "$HOME/.orders-history"
    nullvalue = "-"
"""

import os
import tomllib
from dataclasses import dataclass
from pathlib import Path
from string import Template
from typing import Any, Self

from shqlite.errors import ShellError, TooManyMatchesError


class ConfigurationError(ShellError):
    """
    Thrown to indicate a configuration error.
    """


@dataclass(frozen=True)
class DatabaseConfig:
    """
    A single named database from the configuration file.
    """

    name: str
    path: str
    history_file: Path | None = None
    null_value: str | None = None


class Configuration:
    """
    Represents the parsed configuration data.
    """

    def __init__(
        self: Self, configs: list[DatabaseConfig], path: Path
    ) -> None:
        self._configs = configs
        self._path = path

    @property
    def path(self: Self) -> Path:
        """
        Returns the path of the configuration file.
        """
        return self._path

    def lookup(self: Self, spec: str) -> DatabaseConfig | None:
        """
        Find the database whose name starts with spec, case-blind. An exact
        name always wins over longer names sharing the prefix.

        :returns: the matching configuration, or None if nothing matches

        :raises TooManyMatchesError: if spec matches more than one name
        """
        if spec == "":
            return None

        matches = [
            c for c in self._configs if c.name.lower().startswith(spec.lower())
        ]

        match [c for c in matches if c.name.lower() == spec.lower()]:
            case [exact]:
                return exact
            case _:
                pass

        match matches:
            case []:
                return None
            case [cfg]:
                return cfg
            case many:
                names = ", ".join(c.name for c in many)
                raise TooManyMatchesError(
                    f'"{spec}" matches more than one section in '
                    f'"{self._path}": {names}'
                )


class EnvDict(dict):
    """
    For environment substitution, we want a reference to a non-existent
    variable to substitute "", rather than throw an error (as with
    Template.substitute()) or leave the reference intact (as with
    Template.safe_substitute()). To do that, we simply use a custom
    dictionary class.
    """

    def __getitem__(self: Self, key: Any) -> Any:
        return super().get(key, "")


def expand(value: str, env: EnvDict) -> str:
    """
    Substitute environment variables in a configuration value.
    """
    return Template(value).substitute(env)


def load_configuration(config: Path) -> Configuration:
    """
    Read the configuration file.

    :param config: Path to the configuration file, which must exist

    :raises ConfigurationError: if the file can't be read or parsed, or a
        section is incomplete
    """
    try:
        with open(config, mode="rb") as f:
            data = tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError) as e:
        raise ConfigurationError(f'Unable to read "{config}": {e}') from e

    env = EnvDict(os.environ)

    configs: list[DatabaseConfig] = []
    for key, values in data.items():
        if not isinstance(values, dict):
            raise ConfigurationError(
                f'"{config}": "{key}" must be a section, not a value.'
            )

        path = values.get("path")
        if path is None:
            raise ConfigurationError(
                f'"{config}": Section "{key}" has no "path" setting.'
            )

        # An empty path is an in-memory database, and must stay empty.
        path = expand(path, env)
        if path != "":
            path = str(Path(path).expanduser())

        history = values.get("history")
        if history is not None:
            history = Path(expand(history, env)).expanduser()

        configs.append(
            DatabaseConfig(
                name=key,
                path=path,
                history_file=history,
                null_value=values.get("nullvalue"),
            )
        )

    return Configuration(configs=configs, path=config)
