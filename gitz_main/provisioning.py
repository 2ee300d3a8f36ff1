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
"""Materializes the destination dataset of git-zclone.

Local sources: take a recursive, timestamped snapshot of the source dataset, then 'zfs clone' it with mountpoint=none so
the finalizer can set the mountpoint explicitly afterwards, then copy the source's locally set properties forward.

Remote sources: reuse an existing empty dataset or create a new one, then 'git clone' the URL into its mounted directory.

Resources created before a later failure are left in place for manual inspection.
"""

from __future__ import (
    annotations,
)
import logging
import os
import subprocess
from dataclasses import (
    dataclass,
)

from gitz_main.configuration import (
    Params,
)
from gitz_main.destination import (
    DestinationSpec,
)
from gitz_main.git import (
    GitBackend,
)
from gitz_main.source import (
    SourceSpec,
)
from gitz_main.utils import (
    EXISTS_STATUS,
    FAILURE_STATUS,
    dataset_parent,
    die,
    effective_user_name,
    is_empty_dir,
    utc_timestamp,
)
from gitz_main.zfs import (
    MOUNT_PROPERTIES,
    ZfsBackend,
    called_process_error_msg,
)


@dataclass(frozen=True)
class ProvisionResult:
    """Outcome of provisioning; mountpoint is empty until the dataset has been mounted somewhere.

    Fatal failures raise SystemExit instead of returning, so a returned result always carries exit_code 0, and warnings
    never change it. main() exits with this code.
    """

    dataset: str
    mountpoint: str
    exit_code: int = 0
    snapshot: str | None = None
    reused: bool = False


def check_destination_path(path: str) -> None:
    """Dies with EXISTS_STATUS if something other than an empty directory already lives at ``path``."""
    if os.path.isdir(path):
        if not is_empty_dir(path):
            die(f"Destination directory already exists and is not empty: {path}", EXISTS_STATUS)
    elif os.path.lexists(path):
        die(f"Destination already exists and is not a directory: {path}", EXISTS_STATUS)


def permission_report(
    backend: ZfsBackend, params: Params, action: str, error: str, source_dataset: str | None, dataset: str
) -> str:
    """Returns the diagnostic text for a failed snapshot, clone or create, including a suggested 'zfs allow' grant."""
    user: str = effective_user_name()
    container: str = dataset_parent(dataset)
    lines: list[str] = [f"Failed to {action} {dataset}: {error}", "Commands attempted:"]
    lines += [f"  {cmd}" for cmd in backend.history]
    lines.append("Suggested minimal permission grant (run as root):")
    if source_dataset:
        lines.append(f"  zfs allow -u {user} send,snapshot {source_dataset}")
    if container:
        lines.append(f"  zfs allow -u {user} {params.allow_perms} {container}")
    lines.append("Current permissions:")
    for name in [ds for ds in (source_dataset, container) if ds]:
        lines.append(f"--- zfs allow {name}")
        lines += [f"  {line}" for line in backend.permissions(name).splitlines()]
    return "\n".join(lines)


def copy_local_properties(backend: ZfsBackend, source_dataset: str, dataset: str, log: logging.Logger) -> int:
    """Best-effort copy of locally set or received properties, except mount properties; returns the number copied."""
    copied: int = 0
    for propname, value in backend.list_local_properties(source_dataset).items():
        if propname in MOUNT_PROPERTIES:
            continue
        try:
            backend.set_property(dataset, propname, value)
            copied += 1
        except subprocess.CalledProcessError as e:
            log.warning("Cannot copy property %s=%s to %s: %s", propname, value, dataset, called_process_error_msg(e))
    return copied


def provision_local(source: SourceSpec, dest: DestinationSpec, backend: ZfsBackend, params: Params) -> ProvisionResult:
    """Snapshots the source dataset and clones it into the (new) destination dataset."""
    log = params.log
    dataset: str = dest.resolved_dataset
    assert source.resolved_dataset is not None
    if backend.dataset_exists(dataset):
        die(f"Destination dataset already exists: {dataset}", EXISTS_STATUS)
    check_destination_path(dest.requested_path)

    snapshot: str = f"{source.resolved_dataset}@{params.snapshot_prefix}{utc_timestamp()}"
    try:
        backend.snapshot(snapshot, recursive=True)
    except subprocess.CalledProcessError as e:
        msg = called_process_error_msg(e)
        die(permission_report(backend, params, "snapshot", msg, source.resolved_dataset, dataset), FAILURE_STATUS)
    try:
        backend.clone(snapshot, dataset, {"mountpoint": "none"})
    except subprocess.CalledProcessError as e:
        msg = called_process_error_msg(e)
        die(permission_report(backend, params, "clone", msg, source.resolved_dataset, dataset), FAILURE_STATUS)
    log.info("Cloned %s to %s", snapshot, dataset)
    n: int = copy_local_properties(backend, source.resolved_dataset, dataset, log)
    log.debug("Copied %d local properties from %s", n, source.resolved_dataset)
    return ProvisionResult(dataset=dataset, mountpoint="", snapshot=snapshot)


def provision_remote(
    source: SourceSpec, dest: DestinationSpec, backend: ZfsBackend, git: GitBackend, params: Params
) -> ProvisionResult:
    """Reuses an existing empty dataset or creates a new one, then git-clones the remote URL into it."""
    log = params.log
    dataset: str = dest.resolved_dataset
    reused: bool = backend.dataset_exists(dataset)
    try:
        if reused:
            if dest.mountpoint_override and backend.get_property(dataset, "mountpoint") != dest.mountpoint_override:
                backend.set_property(dataset, "mountpoint", dest.mountpoint_override)
        else:
            check_destination_path(dest.requested_path)
            props = {"mountpoint": dest.mountpoint_override} if dest.mountpoint_override else {}
            backend.create(dataset, props)
    except subprocess.CalledProcessError as e:
        action = "mount" if reused else "create"
        die(permission_report(backend, params, action, called_process_error_msg(e), None, dataset), FAILURE_STATUS)

    mountpoint: str = backend.get_property(dataset, "mountpoint") or ""
    if not mountpoint.startswith("/") or not os.path.isdir(mountpoint):
        die(f"Destination dataset {dataset} is not mounted (mountpoint: {mountpoint or 'unknown'})", EXISTS_STATUS)
    if reused:
        if not is_empty_dir(mountpoint):
            die(f"Destination dataset already exists and is not empty: {dataset} at {mountpoint}", EXISTS_STATUS)
        log.info("Reusing empty dataset %s at %s", dataset, mountpoint)

    try:
        git.clone(source.path_or_url, mountpoint)
    except subprocess.CalledProcessError as e:
        die(f"git clone of {source.path_or_url} into {mountpoint} failed: {called_process_error_msg(e)}", FAILURE_STATUS)
    return ProvisionResult(dataset=dataset, mountpoint=mountpoint, reused=reused)
