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
"""Logging helpers that build the loggers of the gitz tools; Centralizes logger setup so that git-zclone, git-pullall and
git-pushall share uniform formatting.

All output goes to stderr, which keeps warnings and errors on the error stream while stdout stays free for data. Each tool
run owns a private Logger object that is not registered with the logging framework; callers are responsible for closing
any loggers they own via ``reset_logger()``.
"""

from __future__ import (
    annotations,
)
import contextlib
import logging
from logging import (
    Logger,
)
from typing import (
    Final,
    TextIO,
)

from gitz_main.utils import (
    LOG_STDERR,
    LOG_STDOUT,
    LOG_TRACE,
)

LOG_LEVEL_PREFIXES: Final[dict[int, str]] = {
    logging.CRITICAL: "[C] CRITICAL:",
    logging.ERROR: "[E] ERROR:",
    logging.WARNING: "[W]",
    logging.INFO: "[I]",
    logging.DEBUG: "[D]",
    LOG_TRACE: "[T]",
}


def reset_logger(log: Logger) -> None:
    """Removes and closes logging handlers and resets logger to default state."""
    for handler in log.handlers.copy():
        log.removeHandler(handler)
        with contextlib.suppress(BrokenPipeError):
            handler.flush()
        handler.close()
    for _filter in log.filters.copy():
        log.removeFilter(_filter)
    log.setLevel(logging.NOTSET)
    log.propagate = True


def get_log_level(verbose: int = 0, quiet: bool = False) -> int:
    """Maps the -v/-q CLI flags to a logging level; -v is DEBUG, -vv is TRACE."""
    if quiet:
        return logging.WARNING
    if verbose >= 2:
        return LOG_TRACE
    if verbose == 1:
        return logging.DEBUG
    return logging.INFO


def get_simple_logger(
    program: str, logger_name_suffix: str = "", level: int = logging.INFO, stream: TextIO | None = None
) -> Logger:
    """Returns a minimal logger that writes to stderr (or ``stream``) with timestamp, level prefix and program name."""

    level_prefixes_: dict[int, str] = LOG_LEVEL_PREFIXES.copy()
    logger_name = program + "." + logger_name_suffix if logger_name_suffix else program

    class LevelFormatter(logging.Formatter):
        """Injects level prefix and program name into log records."""

        def format(self, record: logging.LogRecord) -> str:
            """Attaches extra fields before delegating to base formatter; emits stdout and stderr levels as-is."""
            if record.levelno in (LOG_STDERR, LOG_STDOUT):
                return record.getMessage()
            record.level_prefix = level_prefixes_.get(record.levelno, "")
            record.program = program
            return super().format(record)

    _add_custom_loglevels()
    log = Logger(logger_name)  # noqa: LOG001 do not register logger with Logger.manager to avoid potential memory leak
    log.setLevel(level)
    log.propagate = False
    handler = logging.StreamHandler(stream)
    handler.setFormatter(
        LevelFormatter(fmt="%(asctime)s %(level_prefix)s [%(program)s] %(message)s", datefmt="%Y-%m-%d %H:%M:%S")
    )
    log.addHandler(handler)

    # perf: tell logging framework not to gather unnecessary expensive info for each log record
    logging.logProcesses = False
    logging.logThreads = False
    logging.logMultiprocessing = False
    return log


def _add_custom_loglevels() -> None:
    """Registers the custom TRACE, STDERR and STDOUT logging levels with the standard python logging framework."""
    logging.addLevelName(LOG_TRACE, "TRACE")
    logging.addLevelName(LOG_STDERR, "STDERR")
    logging.addLevelName(LOG_STDOUT, "STDOUT")
