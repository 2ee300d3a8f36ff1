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
"""Post-provision steps of git-zclone: mountpoint, git remote bookkeeping, upstream tracking and the NetBeans project name.

Only a failure to set the mountpoint or to rewrite the remotes is fatal; upstream tracking and the IDE metadata rewrite
merely log warnings.
"""

from __future__ import (
    annotations,
)
import dataclasses
import logging
import os
import shutil
import subprocess

from gitz_main.destination import (
    DestinationSpec,
)
from gitz_main.git import (
    GitBackend,
    remove_remote_if_present,
)
from gitz_main.provisioning import (
    ProvisionResult,
)
from gitz_main.source import (
    SourceSpec,
)
from gitz_main.utils import (
    FAILURE_STATUS,
    die,
)
from gitz_main.zfs import (
    ZfsBackend,
    called_process_error_msg,
)

ORIGIN: str = "origin"
ORIGIN_PARENT: str = "origin-parent"
IDE_PROJECT_FILE: str = os.path.join("nbproject", "project.xml")
BACKUP_SUFFIX: str = ".bak"


def apply_mountpoint(backend: ZfsBackend, dest: DestinationSpec, dataset: str) -> None:
    """Sets the explicit mountpoint override, or lets ZFS inherit the default mountpoint."""
    try:
        if dest.mountpoint_override:
            backend.set_property(dataset, "mountpoint", dest.mountpoint_override)
        else:
            backend.inherit_property(dataset, "mountpoint")
    except subprocess.CalledProcessError as e:
        die(f"Cannot set mountpoint of {dataset}: {called_process_error_msg(e)}", e.returncode or FAILURE_STATUS)


def origin_url(source_path: str, dest_path: str) -> str:
    """Returns '../<name>' if source and destination share a parent directory, else the absolute source path."""
    source_path = os.path.abspath(source_path)
    if os.path.dirname(source_path) == os.path.dirname(os.path.abspath(dest_path)):
        return os.path.join("..", os.path.basename(source_path))
    return source_path


def rewrite_remotes(git: GitBackend, workdir: str, source_path: str, dest_path: str) -> str:
    """Renames 'origin' to 'origin-parent' and adds a new 'origin' pointing at the source; returns the new origin URL."""
    remotes: list[str] = git.remotes(workdir)
    remove_remote_if_present(git, workdir, ORIGIN_PARENT, remotes)
    if ORIGIN in remotes:
        git.rename_remote(workdir, ORIGIN, ORIGIN_PARENT)
    url: str = origin_url(source_path, dest_path)
    git.add_remote(workdir, ORIGIN, url)
    return url


def track_origin(git: GitBackend, workdir: str, log: logging.Logger) -> bool:
    """Makes the current branch track the same branch on the new origin; failure is only a warning."""
    branch: str | None = git.current_branch(workdir)
    if branch is None:
        log.warning("HEAD is detached in %s; not setting an upstream branch", workdir)
        return False
    try:
        git.fetch(workdir, ORIGIN)
        git.set_upstream(workdir, branch, ORIGIN)
    except subprocess.CalledProcessError as e:
        log.warning("Cannot set upstream of branch %s to %s/%s: %s", branch, ORIGIN, branch, called_process_error_msg(e))
        return False
    log.info("Branch %s now tracks %s/%s", branch, ORIGIN, branch)
    return True


def rename_ide_project(workdir: str, old_name: str, new_name: str, log: logging.Logger) -> bool:
    """Replaces '<name>OLD</name>' by '<name>NEW</name>' in NetBeans project metadata, keeping a backup of the original."""
    path: str = os.path.join(workdir, IDE_PROJECT_FILE)
    if old_name == new_name or not os.path.isfile(path):
        return False
    old_text, new_text = f"<name>{old_name}</name>", f"<name>{new_name}</name>"
    try:
        with open(path, "r", encoding="utf-8") as fd:
            content: str = fd.read()
        if old_text not in content:
            log.warning("%s does not contain %s; leaving it unchanged", path, old_text)
            return False
        shutil.copy2(path, path + BACKUP_SUFFIX)
        with open(path, "w", encoding="utf-8") as fd:
            fd.write(content.replace(old_text, new_text))
    except (OSError, UnicodeError) as e:
        log.warning("Cannot rename IDE project in %s: %s", path, e)
        return False
    log.info("Renamed IDE project %s to %s", old_name, new_name)
    return True


def finalize(
    source: SourceSpec,
    dest: DestinationSpec,
    result: ProvisionResult,
    backend: ZfsBackend,
    git: GitBackend,
    log: logging.Logger,
) -> ProvisionResult:
    """Runs the post-provision steps and returns the result with the effective mountpoint filled in."""
    if source.is_local:
        apply_mountpoint(backend, dest, result.dataset)
    mountpoint: str = backend.get_property(result.dataset, "mountpoint") or result.mountpoint
    result = dataclasses.replace(result, mountpoint=mountpoint)
    log.info("Dataset %s is mounted at %s", result.dataset, mountpoint)

    if source.is_local:
        if not os.path.isdir(mountpoint) or not os.path.exists(os.path.join(mountpoint, ".git")):
            log.warning("No git working copy visible at %s; skipping remote rewrite", mountpoint)
            return result
        try:
            url = rewrite_remotes(git, mountpoint, source.path_or_url, dest.requested_path)
        except subprocess.CalledProcessError as e:
            die(f"Cannot rewrite git remotes in {mountpoint}: {called_process_error_msg(e)}", FAILURE_STATUS)
        log.info("Remote %s now points at %s", ORIGIN, url)
        track_origin(git, mountpoint, log)

    rename_ide_project(mountpoint, source.basename(), os.path.basename(dest.requested_path), log)
    return result
