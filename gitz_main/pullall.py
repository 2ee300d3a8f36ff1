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
"""CLI entry points of git-pullall and git-pushall.

git-pullall fast-forward pulls the current branch from every remote. git-pushall pushes the current branch to every remote,
then does the same as git-pullall. A failing remote is logged and the remaining remotes are still processed; the exit status
is 1 if any remote failed.
"""

from __future__ import (
    annotations,
)
import argparse
import os
import subprocess
import sys
from logging import (
    Logger,
)
from typing import (
    Callable,
)

from gitz_main.argparse_cli import (
    PULLALL_PROG_NAME,
    PUSHALL_PROG_NAME,
    pullall_argument_parser,
)
from gitz_main.connection import (
    CommandRunner,
)
from gitz_main.git import (
    GitBackend,
    GitCli,
)
from gitz_main.loggers import (
    get_log_level,
    get_simple_logger,
    reset_logger,
)
from gitz_main.utils import (
    FAILURE_STATUS,
    die,
    die_tool_unusable,
    getenv_any,
    xfinally,
)
from gitz_main.zfs import (
    called_process_error_msg,
)


def for_each_remote(
    git: GitBackend,
    workdir: str,
    branch: str,
    remotes: list[str],
    verb: str,
    action: Callable[[str, str, str], None],
    log: Logger,
) -> list[str]:
    """Applies ``action(workdir, remote, branch)`` to each remote; returns the remotes that failed."""
    failed: list[str] = []
    for remote in remotes:
        log.info("%s %s %s/%s", verb, workdir, remote, branch)
        try:
            action(workdir, remote, branch)
        except subprocess.CalledProcessError as e:
            log.error("%s %s/%s failed: %s", verb, remote, branch, called_process_error_msg(e))
            failed.append(remote)
    return failed


def run(args: argparse.Namespace, push: bool, log: Logger, git: GitBackend | None = None) -> int:
    """Runs git-pullall (or git-pushall if ``push``) and returns the exit status."""
    git_program: str = args.git_program or getenv_any("git_program") or "git"
    if git is None:
        git = GitCli(CommandRunner(log), git_program=git_program)
    if not git.is_usable():
        die_tool_unusable(git_program)
    workdir: str = os.path.abspath(args.directory)
    branch: str | None = git.current_branch(workdir)
    if branch is None:
        die(f"Not on a branch (detached HEAD or not a git working copy): {workdir}", FAILURE_STATUS)
    all_remotes: list[str] = git.remotes(workdir)
    remotes: list[str] = all_remotes if not args.remote else args.remote
    unknown: list[str] = [remote for remote in remotes if remote not in all_remotes]
    if unknown:
        die(f"No such remote: {', '.join(unknown)}", FAILURE_STATUS)
    if not remotes:
        log.warning("No remotes configured in %s", workdir)
        return 0

    failed: list[str] = []
    if push:
        failed += for_each_remote(git, workdir, branch, remotes, "Pushing", git.push, log)
    failed += for_each_remote(git, workdir, branch, remotes, "Pulling", git.pull_ff_only, log)
    if failed:
        log.error("Failed remotes: %s", ", ".join(dict.fromkeys(failed)))
        return FAILURE_STATUS
    return 0


def run_main(args: argparse.Namespace, prog: str, log: Logger | None = None, git: GitBackend | None = None) -> int:
    """API for Python clients; visible for testing."""
    owns_log: bool = log is None
    if log is None:
        log = get_simple_logger(prog, level=get_log_level(args.verbose, args.quiet))
    assert log is not None
    with xfinally(lambda: reset_logger(log) if owns_log else None):
        try:
            return run(args, push=prog == PUSHALL_PROG_NAME, log=log, git=git)
        except subprocess.CalledProcessError as e:
            log.error("%s", f"Exiting {prog} with status code {FAILURE_STATUS}. Cause: {called_process_error_msg(e)}")
            return FAILURE_STATUS
        except SystemExit as e:
            log.error("%s", f"Exiting {prog} with status code {e.code}. Cause: {e}")
            raise


def main() -> None:
    """API for command line clients of git-pullall."""
    sys.exit(run_main(pullall_argument_parser(PULLALL_PROG_NAME).parse_args(), PULLALL_PROG_NAME))


def main_pushall() -> None:
    """API for command line clients of git-pushall."""
    sys.exit(run_main(pullall_argument_parser(PUSHALL_PROG_NAME).parse_args(), PUSHALL_PROG_NAME))


if __name__ == "__main__":
    main()
