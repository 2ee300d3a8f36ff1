# Copyright 2024 Wolfgang Hoschek AT mac DOT com
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
#
"""Configuration subsystem; All CLI option/parameter values of git-zclone are reachable from the "Params" class.

Each tunable setting is resolved with this precedence, highest first: explicit CLI flag, the optional YAML file given via
--config, the environment variable ``gitz_<name>``, and finally the built-in default.
"""

from __future__ import (
    annotations,
)
import argparse
import re
from logging import (
    Logger,
)
from typing import (
    Any,
    Final,
)

from gitz_main.utils import (
    EXISTS_STATUS,
    FAILURE_STATUS,
    PROG_NAME,
    SHELL_CHARS,
    die,
    getenv_any,
)

# constants:
SNAPSHOT_PREFIX_DEFAULT: Final[str] = PROG_NAME + "_"
ALLOW_PERMS_DEFAULT: Final[str] = "clone,create,mount,snapshot,canmount,mountpoint,readonly"
SETTINGS_DEFAULTS: Final[dict[str, str]] = {
    "snapshot_prefix": SNAPSHOT_PREFIX_DEFAULT,
    "zfs_program": "zfs",
    "git_program": "git",
    "df_program": "df",
    "allow_perms": ALLOW_PERMS_DEFAULT,
}
SNAPSHOT_PREFIX_REGEX: Final[re.Pattern[str]] = re.compile(r"^[A-Za-z0-9_.:\-]*$")
ALLOW_PERMS_REGEX: Final[re.Pattern[str]] = re.compile(r"^[a-z_]+(,[a-z_]+)*$")


def load_config_file(path: str) -> dict[str, Any]:
    """Loads and returns the YAML mapping of setting names to values.

    Imports the YAML parser lazily to keep it optional for users that don't use a config file.
    """
    try:
        import yaml
    except ImportError as e:  # pragma: no cover - exact ImportError text varies across environments
        die(f"PyYAML is required for --config. Install with: pip install '{PROG_NAME}[yaml]' ({e})", EXISTS_STATUS)

    try:
        with open(path, "r", encoding="utf-8") as fd:
            data = yaml.safe_load(fd) or {}
    except OSError as e:
        die(f"Cannot read config file: {e}", FAILURE_STATUS)
    except yaml.YAMLError as e:
        die(f"Failed parsing config file {path}: {e}", FAILURE_STATUS)
    if not isinstance(data, dict):
        die(f"Top-level content of config file {path} must be a mapping", FAILURE_STATUS)
    unknown = sorted(str(key) for key in data if key not in SETTINGS_DEFAULTS)
    if unknown:
        die(f"Unknown settings in config file {path}: {', '.join(unknown)}", FAILURE_STATUS)
    return {str(key): str(value) for key, value in data.items() if value is not None}


def _validate_program_name(value: str, name: str) -> str:
    if not value or any(char.isspace() or char in SHELL_CHARS for char in value):
        die(f"Invalid program name for {name}: '{value}'", FAILURE_STATUS)
    return value


#############################################################################
class Params:
    """All parsed CLI options combined into a single bundle; simplifies passing around settings and defaults."""

    def __init__(
        self, args: argparse.Namespace, sys_argv: list[str], log: Logger, file_config: dict[str, Any] | None = None
    ) -> None:
        """Reads from ArgumentParser via args."""
        # immutable variables:
        assert args is not None
        assert isinstance(sys_argv, list)
        assert log is not None
        self.args: Final[argparse.Namespace] = args
        self.sys_argv: Final[list[str]] = sys_argv
        self.log: Final[Logger] = log
        if file_config is None:
            config_file = getattr(args, "config", None)
            file_config = load_config_file(config_file) if config_file else {}
        self.file_config: Final[dict[str, Any]] = file_config

        self.source: Final[str] = args.source
        self.dest: Final[str] = args.dest
        self.is_dry_run: Final[bool] = bool(args.dryrun)

        snapshot_prefix: str = self._setting("snapshot_prefix")
        if not SNAPSHOT_PREFIX_REGEX.match(snapshot_prefix):
            die(f"Invalid snapshot prefix: '{snapshot_prefix}'", FAILURE_STATUS)
        self.snapshot_prefix: Final[str] = snapshot_prefix
        self.zfs_program: Final[str] = _validate_program_name(self._setting("zfs_program"), "zfs_program")
        self.git_program: Final[str] = _validate_program_name(self._setting("git_program"), "git_program")
        self.df_program: Final[str] = _validate_program_name(self._setting("df_program"), "df_program")
        allow_perms: str = self._setting("allow_perms")
        if not ALLOW_PERMS_REGEX.match(allow_perms):
            die(f"Invalid ZFS permission list: '{allow_perms}'", FAILURE_STATUS)
        self.allow_perms: Final[str] = allow_perms

    def _setting(self, name: str) -> str:
        """Returns the value of the named setting from CLI, config file, env var or default, in that order."""
        value = getattr(self.args, name, None)
        if value is None:
            value = self.file_config.get(name)
        if value is None:
            value = getenv_any(name)
        if value is None:
            value = SETTINGS_DEFAULTS[name]
        return str(value)

    def __repr__(self) -> str:
        return str({k: v for k, v in self.__dict__.items() if k not in ("args", "log")})

