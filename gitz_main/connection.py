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
"""Runs external CLI commands (git, zfs, df) on the local host, echoing each command to the log before executing it.

Commands are executed directly as argv, without an intermediate shell. Every command that is executed (or, in dry-run mode,
that would be executed) is appended to ``CommandRunner.history`` so that failure reports can show exactly what was tried.
"""

from __future__ import (
    annotations,
)
import logging
import subprocess
import sys
from subprocess import (
    DEVNULL,
    PIPE,
)

from gitz_main.utils import (
    LOG_TRACE,
    list_formatter,
    shell_join,
    stderr_to_str,
    subprocess_run,
    xprint,
)


#############################################################################
class CommandRunner:
    """Executes CLI commands as child processes and records them; one instance per tool run."""

    def __init__(self, log: logging.Logger, is_dry_run: bool = False) -> None:
        self.log: logging.Logger = log
        self.is_dry_run: bool = is_dry_run
        self.history: list[str] = []

    def run(
        self,
        cmd: list[str],
        level: int = LOG_TRACE,
        check: bool = True,
        print_stdout: bool = False,
        print_stderr: bool = True,
        cwd: str | None = None,
    ) -> str:
        """Runs the given CLI cmd and returns its stdout; raises CalledProcessError on nonzero exit if ``check``."""
        assert cmd is not None and isinstance(cmd, list) and len(cmd) > 0
        log = self.log
        msg: str = "Would execute: %s" if self.is_dry_run else "Executing: %s"
        log.log(level, msg, list_formatter(cmd))
        self.history.append(shell_join(cmd))
        if self.is_dry_run:
            return ""
        try:
            process = subprocess_run(cmd, stdin=DEVNULL, stdout=PIPE, stderr=PIPE, text=True, check=check, cwd=cwd)
        except subprocess.CalledProcessError as e:
            xprint(log, stderr_to_str(e.stdout), run=print_stdout, file=sys.stdout, end="")
            xprint(log, stderr_to_str(e.stderr), run=print_stderr, file=sys.stderr, end="")
            raise
        xprint(log, process.stdout, run=print_stdout, file=sys.stdout, end="")
        xprint(log, process.stderr, run=print_stderr, file=sys.stderr, end="")
        return process.stdout

    def query(self, cmd: list[str], cwd: str | None = None) -> subprocess.CompletedProcess:
        """Runs a read-only query even in dry-run mode and returns the completed process without raising on failure.

        A program that cannot be found is reported like a shell does, as exit status 127.
        """
        assert cmd is not None and isinstance(cmd, list) and len(cmd) > 0
        self.log.log(LOG_TRACE, "Querying: %s", list_formatter(cmd))
        try:
            return subprocess_run(cmd, stdin=DEVNULL, stdout=PIPE, stderr=PIPE, text=True, cwd=cwd)
        except FileNotFoundError as e:
            return subprocess.CompletedProcess(cmd, 127, "", str(e))
