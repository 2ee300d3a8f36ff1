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
"""Documentation, definition of input data and ArgumentParser used by the 'git-zclone', 'git-pullall' and 'git-pushall'
CLIs."""

from __future__ import annotations
import argparse

from gitz_main.argparse_actions import (
    NonEmptyStringAction,
    ProgramNameAction,
    RemoteNameAction,
)
from gitz_main.configuration import (
    ALLOW_PERMS_DEFAULT,
    SNAPSHOT_PREFIX_DEFAULT,
)
from gitz_main.utils import (
    ENV_VAR_PREFIX,
)

# constants:
__version__: str = "0.4.0"
ZCLONE_PROG_NAME: str = "git-zclone"
PULLALL_PROG_NAME: str = "git-pullall"
PUSHALL_PROG_NAME: str = "git-pushall"


def _add_logging_arguments(parser: argparse.ArgumentParser) -> None:
    # fmt: off
    parser.add_argument(
        "--verbose", "-v", action="count", default=0,
        help="Print verbose information. This option can be specified multiple times to increase the level of verbosity. "
             "To print what is happening under the hood, consider using -v -v to also echo each external command "
             "that is executed.\n\n")
    parser.add_argument(
        "--quiet", "-q", action="store_true",
        help="Suppress non-error, info, debug, and trace output; warnings and errors are still printed.\n\n")
    parser.add_argument(
        "--git-program", default=None, action=ProgramNameAction, metavar="PROGRAM",
        help=f"The name or path of the git CLI (default: git). Can also be set via the {ENV_VAR_PREFIX}git_program "
             "environment variable.\n\n")
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s-{__version__}",
        help="Display version information and exit.\n\n")
    # fmt: on


def argument_parser() -> argparse.ArgumentParser:
    """Returns the CLI parser used by git-zclone."""
    # fmt: off
    parser: argparse.ArgumentParser = argparse.ArgumentParser(
        prog=ZCLONE_PROG_NAME,
        allow_abbrev=False,
        formatter_class=argparse.RawTextHelpFormatter,
        description=f"""
*{ZCLONE_PROG_NAME} clones a git working copy that lives on its own ZFS dataset into a new ZFS dataset, or clones a remote
git URL into a newly created ZFS dataset.*

If FROM is a local directory, it must be a git working copy that is the mountpoint of a ZFS dataset. {ZCLONE_PROG_NAME}
takes a recursive snapshot of that dataset, creates a ZFS clone of the snapshot, mounts the clone at DEST, renames the
clone's 'origin' remote to 'origin-parent', adds a new 'origin' remote that points back at FROM, and makes the current
branch track it. This is near-instant and needs no extra disk space, regardless of the size of the working copy.

If FROM is a URL (scheme://...) or an scp-style address ([user@]host:path), {ZCLONE_PROG_NAME} creates an empty ZFS
dataset (or reuses an existing empty one) and runs 'git clone' into it.

The destination dataset is derived from DEST as follows, first match wins:

* DEST already is the mountpoint of a dataset: that dataset is used.
* The parent directory of DEST is the mountpoint of a dataset: DEST becomes a child dataset.
* FROM is local: DEST becomes a sibling dataset of FROM's dataset, mounted at DEST.
* FROM is remote: DEST becomes a child of the dataset that backs the current working directory, mounted at DEST.

If NetBeans project metadata (nbproject/project.xml) is present, the project name is renamed from the basename of FROM
to the basename of DEST, keeping a .bak copy of the original file.

Exit status is 0 on success, 1 on a validation or other fatal failure, 2 if the destination already exists or a required
program is unusable, and 3 if no dataset can be derived for DEST.

# Example

`{ZCLONE_PROG_NAME} /ws/proj /ws/proj-bugfix`

`{ZCLONE_PROG_NAME} https://github.com/example/repo.git ./repo`
""")

    parser.add_argument(
        "source", metavar="FROM",
        help="Local git working copy on a ZFS dataset, or remote git URL to clone from.\n\n")
    parser.add_argument(
        "dest", metavar="DEST",
        help="Directory to clone into; becomes the mountpoint of the destination dataset.\n\n")
    parser.add_argument(
        "--dryrun", "-n", action="store_true",
        help="Do a dry run (aka 'no-op') to print what operations would happen if the command were to be executed "
             "for real. Only classifies FROM and resolves the destination dataset, and does not modify anything.\n\n")
    parser.add_argument(
        "--snapshot-prefix", default=None, action=NonEmptyStringAction, metavar="STRING",
        help=f"Prefix of the name of the snapshot that a local clone is created from; the UTC time is appended "
             f"(default: {SNAPSHOT_PREFIX_DEFAULT}). Can also be set via the {ENV_VAR_PREFIX}snapshot_prefix "
             "environment variable.\n\n")
    parser.add_argument(
        "--allow-perms", default=None, action=NonEmptyStringAction, metavar="PERMS",
        help=f"Comma separated ZFS permissions to suggest via 'zfs allow' when a snapshot, clone or create fails for lack "
             f"of permissions (default: {ALLOW_PERMS_DEFAULT}).\n\n")
    parser.add_argument(
        "--zfs-program", default=None, action=ProgramNameAction, metavar="PROGRAM",
        help="The name or path of the zfs CLI (default: zfs).\n\n")
    parser.add_argument(
        "--df-program", default=None, action=ProgramNameAction, metavar="PROGRAM",
        help="The name or path of the POSIX df CLI that maps a path to its backing dataset (default: df).\n\n")
    parser.add_argument(
        "--config", default=None, action=NonEmptyStringAction, metavar="FILE",
        help="Optional YAML file with default values for snapshot_prefix, allow_perms, zfs_program, git_program and "
             "df_program. Explicit CLI options take precedence. Requires PyYAML.\n\n")
    _add_logging_arguments(parser)
    return parser
    # fmt: on


def pullall_argument_parser(prog: str = PULLALL_PROG_NAME) -> argparse.ArgumentParser:
    """Returns the CLI parser used by git-pullall and git-pushall."""
    is_push: bool = prog == PUSHALL_PROG_NAME
    what: str = (
        "pushes the current branch to each git remote and then fast-forward pulls it from each remote"
        if is_push
        else "fast-forward pulls the current branch from each git remote"
    )
    # fmt: off
    parser: argparse.ArgumentParser = argparse.ArgumentParser(
        prog=prog,
        allow_abbrev=False,
        formatter_class=argparse.RawTextHelpFormatter,
        description=f"""
*{prog} {what}.*

Only fast-forward merges are performed; a remote whose branch has diverged is reported as an error and the remaining
remotes are still processed. Exit status is 0 if all remotes succeeded, else 1.
""")
    parser.add_argument(
        "--remote", default=None, action=RemoteNameAction, metavar="NAME",
        help="Restrict to the given remote instead of all remotes; can be specified multiple times.\n\n")
    parser.add_argument(
        "--directory", "-C", default=".", action=NonEmptyStringAction, metavar="DIR",
        help="Run as if started in DIR instead of the current working directory.\n\n")
    _add_logging_arguments(parser)
    return parser
    # fmt: on
