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
"""Main CLI entry point of git-zclone; clones a git working copy into a new ZFS dataset.

Usage: git-zclone [options] FROM DEST

The run is a strictly sequential pipeline: classify FROM, resolve the destination dataset, provision it, then finalize it.
Fatal errors raise SystemExit with the exit status of the failed stage and are not rolled back; see argparse_cli.py for
the user-facing documentation.
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

from gitz_main.argparse_cli import (
    ZCLONE_PROG_NAME,
    argument_parser,
)
from gitz_main.configuration import (
    Params,
)
from gitz_main.connection import (
    CommandRunner,
)
from gitz_main.destination import (
    DestinationSpec,
    resolve_destination,
)
from gitz_main.finalizer import (
    finalize,
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
from gitz_main.provisioning import (
    ProvisionResult,
    provision_local,
    provision_remote,
)
from gitz_main.source import (
    SourceSpec,
    classify_source,
)
from gitz_main.utils import (
    FAILURE_STATUS,
    LOG_TRACE,
    die_tool_unusable,
    dry,
    xfinally,
)
from gitz_main.zfs import (
    ZfsBackend,
    ZfsCli,
)


def main() -> None:
    """API for command line clients."""
    try:
        result: ProvisionResult | None = run_main(argument_parser().parse_args(), sys.argv)
    except subprocess.CalledProcessError:
        sys.exit(FAILURE_STATUS)
    sys.exit(result.exit_code if result is not None else 0)


def run_main(
    args: argparse.Namespace,
    sys_argv: list[str] | None = None,
    log: Logger | None = None,
    zfs: ZfsBackend | None = None,
    git: GitBackend | None = None,
) -> ProvisionResult | None:
    """API for Python clients; visible for testing; may become a public API eventually."""
    return Job(zfs=zfs, git=git).run_main(args, sys_argv, log)


#############################################################################
class Job:
    """Executes one git-zclone run; the backends default to the real zfs and git CLIs."""

    def __init__(self, zfs: ZfsBackend | None = None, git: GitBackend | None = None) -> None:
        self.params: Params
        self.zfs: ZfsBackend | None = zfs
        self.git: GitBackend | None = git
        self.source: SourceSpec | None = None
        self.dest: DestinationSpec | None = None
        self.result: ProvisionResult | None = None

    def run_main(
        self, args: argparse.Namespace, sys_argv: list[str] | None = None, log: Logger | None = None
    ) -> ProvisionResult | None:
        """Sets up logging and configuration, runs the pipeline, and maps failures to exit status codes."""
        owns_log: bool = log is None
        if log is None:
            log = get_simple_logger(ZCLONE_PROG_NAME, level=get_log_level(args.verbose, args.quiet))
        assert log is not None

        def log_error_on_exit(error: object, status_code: object, exc_info: bool = False) -> None:
            log.error("%s", f"Exiting {ZCLONE_PROG_NAME} with status code {status_code}. Cause: {error}", exc_info=exc_info)

        with xfinally(lambda: reset_logger(log) if owns_log else None):
            try:
                log.debug("CLI arguments: %s %s", " ".join(sys_argv or []), f"[euid: {os.geteuid()}]")
                self.params = p = Params(args, sys_argv or [], log)
                log.log(LOG_TRACE, "Params: %s", p)
                runner = CommandRunner(log, is_dry_run=p.is_dry_run)
                if self.zfs is None:
                    self.zfs = ZfsCli(runner, zfs_program=p.zfs_program, df_program=p.df_program)
                if self.git is None:
                    self.git = GitCli(runner, git_program=p.git_program)
                self.result = self.run_tasks()
            except subprocess.CalledProcessError as e:
                log_error_on_exit(e, FAILURE_STATUS)  # exit status stays within 0..3
                raise
            except SystemExit as e:
                log_error_on_exit(e, e.code)
                raise
            except BaseException as e:
                log_error_on_exit(e, FAILURE_STATUS, exc_info=True)
                raise SystemExit(FAILURE_STATUS) from e
            log.info("%s", dry("Success. Goodbye!", self.params.is_dry_run))
            return self.result

    def run_tasks(self) -> ProvisionResult | None:
        """Classifies FROM, resolves DEST, provisions and finalizes the destination dataset, strictly in this order."""
        p, log = self.params, self.params.log
        zfs, git = self.zfs, self.git
        assert zfs is not None and git is not None
        if not zfs.is_usable():
            die_tool_unusable(p.zfs_program)
        if not git.is_usable():
            die_tool_unusable(p.git_program)

        self.source = source = classify_source(p.source, zfs)
        log.info("Source: %s (%s%s)", source.path_or_url, source.kind.value, _dataset_suffix(source.resolved_dataset))
        self.dest = dest = resolve_destination(p.dest, source, zfs)
        log.info(
            "Destination: %s --> dataset %s via %s strategy, mountpoint override: %s",
            dest.requested_path, dest.resolved_dataset, dest.strategy, dest.mountpoint_override or "none (inherited)",
        )  # fmt: skip
        if p.is_dry_run:
            log.info("%s", dry(f"run: would {'clone' if source.is_local else 'create'} {dest.resolved_dataset}", True))
            return None

        if source.is_local:
            result: ProvisionResult = provision_local(source, dest, zfs, p)
        else:
            result = provision_remote(source, dest, zfs, git, p)
        return finalize(source, dest, result, zfs, git, log)


def _dataset_suffix(dataset: str | None) -> str:
    return f" on dataset {dataset}" if dataset else ""


if __name__ == "__main__":
    main()
