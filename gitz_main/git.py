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
"""Narrow adapter over the ``git`` CLI, covering what git-zclone, git-pullall and git-pushall need."""

from __future__ import (
    annotations,
)
import logging
import subprocess
from typing import (
    Protocol,
)

from gitz_main.connection import (
    CommandRunner,
)
from gitz_main.utils import (
    LOG_DEBUG,
)


class GitBackend(Protocol):
    """Operations on a git working copy."""

    def is_usable(self) -> bool: ...

    def clone(self, url: str, directory: str) -> None: ...

    def remotes(self, workdir: str) -> list[str]: ...

    def remove_remote(self, workdir: str, name: str) -> None: ...

    def rename_remote(self, workdir: str, old_name: str, new_name: str) -> None: ...

    def add_remote(self, workdir: str, name: str, url: str) -> None: ...

    def fetch(self, workdir: str, remote: str) -> None: ...

    def current_branch(self, workdir: str) -> str | None: ...

    def set_upstream(self, workdir: str, branch: str, remote: str) -> None: ...

    def pull_ff_only(self, workdir: str, remote: str, branch: str) -> None: ...

    def push(self, workdir: str, remote: str, branch: str) -> None: ...


#############################################################################
class GitCli:
    """GitBackend implementation that shells out to the git program."""

    def __init__(self, runner: CommandRunner, git_program: str = "git") -> None:
        self.runner: CommandRunner = runner
        self.git_program: str = git_program

    def _git(self, workdir: str, *args: str) -> list[str]:
        return [self.git_program, "-C", workdir] + list(args)

    def is_usable(self) -> bool:
        return self.runner.query([self.git_program, "--version"]).returncode == 0

    def clone(self, url: str, directory: str) -> None:
        self.runner.run([self.git_program, "clone", url, directory], level=logging.INFO)

    def remotes(self, workdir: str) -> list[str]:
        proc = self.runner.query(self._git(workdir, "remote"))
        if proc.returncode != 0:
            raise subprocess.CalledProcessError(proc.returncode, proc.args, output=proc.stdout, stderr=proc.stderr)
        return [line.strip() for line in proc.stdout.splitlines() if line.strip()]

    def remove_remote(self, workdir: str, name: str) -> None:
        self.runner.run(self._git(workdir, "remote", "remove", name), level=LOG_DEBUG)

    def rename_remote(self, workdir: str, old_name: str, new_name: str) -> None:
        self.runner.run(self._git(workdir, "remote", "rename", old_name, new_name), level=LOG_DEBUG)

    def add_remote(self, workdir: str, name: str, url: str) -> None:
        self.runner.run(self._git(workdir, "remote", "add", name, url), level=LOG_DEBUG)

    def fetch(self, workdir: str, remote: str) -> None:
        self.runner.run(self._git(workdir, "fetch", "--quiet", remote), level=LOG_DEBUG)

    def current_branch(self, workdir: str) -> str | None:
        """Returns the short name of the checked out branch, or None on a detached HEAD."""
        proc = self.runner.query(self._git(workdir, "symbolic-ref", "--quiet", "--short", "HEAD"))
        branch = proc.stdout.strip()
        return branch if proc.returncode == 0 and branch else None

    def set_upstream(self, workdir: str, branch: str, remote: str) -> None:
        """Configures ``remote/branch`` as upstream of ``branch``; git < 1.8 only knows the legacy --set-upstream syntax."""
        upstream = f"{remote}/{branch}"
        try:
            self.runner.run(self._git(workdir, "branch", f"--set-upstream-to={upstream}", branch), level=LOG_DEBUG)
        except subprocess.CalledProcessError:
            self.runner.log.debug("Falling back to legacy upstream syntax for branch %s", branch)
            self.runner.run(self._git(workdir, "branch", "--set-upstream", branch, upstream), level=LOG_DEBUG)

    def pull_ff_only(self, workdir: str, remote: str, branch: str) -> None:
        self.runner.run(self._git(workdir, "pull", "--ff-only", remote, branch), level=logging.INFO, print_stdout=True)

    def push(self, workdir: str, remote: str, branch: str) -> None:
        self.runner.run(self._git(workdir, "push", remote, branch), level=logging.INFO, print_stdout=True)


def remove_remote_if_present(git: GitBackend, workdir: str, name: str, remotes: list[str]) -> bool:
    """Removes the named remote if it is configured; returns False without error if it is absent."""
    if name not in remotes:
        return False
    git.remove_remote(workdir, name)
    remotes.remove(name)
    return True
