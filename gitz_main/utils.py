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
"""Collection of helper functions used across gitz; includes environment variable parsing, process execution, exit status
constants and ZFS dataset name checks.

Everything in this module relies only on the standard library so other modules remain dependency free.
"""

from __future__ import annotations
import argparse
import contextlib
import logging
import os
import pwd
import shlex
import subprocess
import sys
import types
from datetime import (
    datetime,
    timezone,
)
from typing import (
    Any,
    Callable,
    Iterable,
    NoReturn,
    TextIO,
)

# constants:
PROG_NAME: str = "gitz"
ENV_VAR_PREFIX: str = PROG_NAME + "_"
FAILURE_STATUS: int = 1  # generic validation or fatal failure
EXISTS_STATUS: int = 2  # pre-existing destination, or a required tool is unusable
DIE_STATUS: int = 3  # input shape that no resolution strategy handles
LOG_STDERR: int = (logging.INFO + logging.WARNING) // 2  # custom log level is halfway in between
LOG_STDOUT: int = (LOG_STDERR + logging.INFO) // 2  # custom log level is halfway in between
LOG_DEBUG: int = logging.DEBUG
LOG_TRACE: int = logging.DEBUG // 2  # custom log level is halfway in between
SHELL_CHARS: str = '"' + "'`~!@#$%^&*()+={}[]|;<>?,\\"
SWAP_DATASET: str = "swap"  # what df reports as the backing device of Solaris tmpfs
SNAPSHOT_TIME_FORMAT: str = "%Y-%m-%d_%H:%M:%SZ"  # UTC, sortable, second precision


def getenv_any(key: str, default: str | None = None) -> str | None:
    """All shell environment variable names used for configuration start with this prefix."""
    return os.getenv(ENV_VAR_PREFIX + key, default)


def die(msg: str, exit_code: int = DIE_STATUS, parser: argparse.ArgumentParser | None = None) -> NoReturn:
    """Exits the program with ``exit_code`` after logging ``msg``."""
    if parser is None:
        ex = SystemExit(msg)
        ex.code = exit_code
        raise ex
    else:
        parser.error(msg)


def dry(msg: str, is_dry_run: bool) -> str:
    """Prefix ``msg`` with 'Dry' when in dry-run mode."""
    return "Dry " + msg if is_dry_run else msg


def list_formatter(iterable: Iterable[Any], separator: str = " ", lstrip: bool = False) -> Any:
    """Lazy formatter joining items with ``separator`` used to avoid overhead in disabled log levels."""

    class CustomListFormatter:
        """Formatter object that joins items when converted to ``str``."""

        def __str__(self) -> str:
            s = separator.join(map(str, iterable))
            return s.lstrip() if lstrip else s

    return CustomListFormatter()


def shell_join(cmd: Iterable[str]) -> str:
    """Renders ``cmd`` the way a user would paste it into a shell."""
    return " ".join(shlex.quote(arg) for arg in cmd)


def stderr_to_str(stderr: Any) -> str:
    """Workaround for https://github.com/python/cpython/issues/87597."""
    return str(stderr) if not isinstance(stderr, bytes) else stderr.decode("utf-8")


def xprint(log: logging.Logger, value: Any, run: bool = True, end: str = "\n", file: TextIO | None = None) -> None:
    """Optionally logs ``value`` at stdout/stderr level."""
    if run and value:
        value = value if end else str(value).rstrip()
        level = LOG_STDOUT if file is sys.stdout else LOG_STDERR
        log.log(level, "%s", value)


def subprocess_run(*args: Any, **kwargs: Any) -> subprocess.CompletedProcess:
    """Drop-in replacement for subprocess.run() that mimics its behavior except it kills the child on any exception."""
    input_value = kwargs.pop("input", None)
    check = kwargs.pop("check", False)
    if input_value is not None:
        if kwargs.get("stdin") is not None:
            raise ValueError("input and stdin are mutually exclusive")
        kwargs["stdin"] = subprocess.PIPE

    with subprocess.Popen(*args, **kwargs) as proc:
        try:
            stdout, stderr = proc.communicate(input_value)
        except BaseException:
            proc.kill()
            raise
        else:
            exitcode: int | None = proc.poll()
            assert exitcode is not None
            if check and exitcode:
                raise subprocess.CalledProcessError(exitcode, proc.args, output=stdout, stderr=stderr)
    return subprocess.CompletedProcess(proc.args, exitcode, stdout, stderr)


def utc_timestamp(now: datetime | None = None) -> str:
    """Returns a sortable UTC timestamp with second precision for use in snapshot names; e.g. 2024-09-03_12:26:15Z."""
    now = datetime.now(timezone.utc) if now is None else now.astimezone(timezone.utc)
    return now.strftime(SNAPSHOT_TIME_FORMAT)


def is_valid_dataset_name(dataset: str) -> bool:
    """'zfs create' CLI does not accept dataset names that are empty or start or end in a slash, etc."""
    # Also see https://github.com/openzfs/zfs/issues/439#issuecomment-2784424
    # and https://github.com/openzfs/zfs/issues/8798
    return not (
        dataset in ("", ".", "..")
        or any(dataset.startswith(prefix) for prefix in ("/", "./", "../"))
        or any(dataset.endswith(suffix) for suffix in ("/", "/.", "/.."))
        or any(substring in dataset for substring in ("//", "/./", "/../"))
        or any(char in SHELL_CHARS or (char.isspace() and char != " ") for char in dataset)
        or not dataset[0].isalpha()
    )


def validate_dataset_name(dataset: str, input_text: str, exit_code: int = FAILURE_STATUS) -> None:
    """Dies unless ``dataset`` is a syntactically valid ZFS dataset name."""
    if not is_valid_dataset_name(dataset):
        die(f"Invalid ZFS dataset name: '{dataset}' for: '{input_text}'", exit_code)


def dataset_parent(dataset: str) -> str:
    """Returns the parent of a ZFS dataset; Example: "tank/a/b" --> "tank/a"; "tank" --> ""."""
    i: int = dataset.rfind("/")
    return dataset[0:i] if i >= 0 else ""


def is_empty_dir(path: str) -> bool:
    """Returns True if ``path`` is a directory without any entries."""
    with os.scandir(path) as it:
        return next(it, None) is None


#############################################################################
class _XFinally(contextlib.AbstractContextManager):
    """Context manager ensuring cleanup code executes after ``with`` blocks."""

    def __init__(self, cleanup: Callable[[], None]) -> None:
        """Records the callable to run upon exit."""
        self._cleanup = cleanup  # Zero-argument callable executed after the `with` block exits.

    def __exit__(  # type: ignore[exit-return]  # need to ignore on python <= 3.8
        self, exc_type: type[BaseException] | None, exc: BaseException | None, tb: types.TracebackType | None
    ) -> bool:
        """Runs cleanup and propagate any exceptions appropriately."""
        try:
            self._cleanup()
        except BaseException as cleanup_exc:
            if exc is None:
                raise  # No main error --> propagate cleanup error normally
            exc.__context__ = cleanup_exc
            return False  # reraise original exception
        return False  # propagate main exception if any


def xfinally(cleanup: Callable[[], None]) -> _XFinally:
    """Usage: with xfinally(lambda: cleanup()): ...
    Returns a context manager that guarantees that cleanup() runs on exit and guarantees any error in cleanup() will never
    mask an exception raised earlier inside the body of the `with` block."""
    return _XFinally(cleanup)


def die_tool_unusable(program: str) -> NoReturn:
    """Dies with EXISTS_STATUS because the given program is missing or broken."""
    die(f"Required program '{program}' is not installed or not usable (PATH={os.environ.get('PATH', '')})", EXISTS_STATUS)


def effective_user_name() -> str:
    """Returns the login name of the effective uid, or the numeric uid if it has no passwd entry, as in some containers."""
    euid: int = os.geteuid()
    try:
        return pwd.getpwuid(euid).pw_name
    except KeyError:
        return str(euid)
