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
"""Narrow adapter over the ``zfs`` CLI and the ``df`` reverse mount lookup.

The decision logic of git-zclone talks to ZFS only through the ``ZfsBackend`` protocol, so it can be tested against an
in-memory fake. ``ZfsCli`` is the production implementation; it parses the tab separated output of ``zfs ... -H`` and
the POSIX output of ``df -P``.
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
from typing import (
    Final,
    Protocol,
)

from gitz_main.connection import (
    CommandRunner,
)
from gitz_main.utils import (
    LOG_DEBUG,
    SWAP_DATASET,
    is_valid_dataset_name,
    stderr_to_str,
)

# constants:
MOUNT_PROPERTIES: Final[frozenset[str]] = frozenset(["canmount", "mountpoint"])  # governed separately from other props


#############################################################################
@dataclass(frozen=True)
class MountInfo:
    """What the reverse mount lookup reports for a path: the backing device (a dataset name for ZFS) and its mount root."""

    source: str
    mountpoint: str


class ZfsBackend(Protocol):
    """Operations that git-zclone needs from the storage backend."""

    history: list[str]

    def is_usable(self) -> bool: ...

    def resolve_backing_dataset(self, path: str) -> MountInfo | None: ...

    def dataset_exists(self, dataset: str) -> bool: ...

    def get_property(self, dataset: str, propname: str) -> str | None: ...

    def list_local_properties(self, dataset: str) -> dict[str, str]: ...

    def snapshot(self, snapshot: str, recursive: bool = True) -> None: ...

    def clone(self, snapshot: str, dataset: str, properties: dict[str, str]) -> None: ...

    def create(self, dataset: str, properties: dict[str, str]) -> None: ...

    def set_property(self, dataset: str, propname: str, value: str) -> None: ...

    def inherit_property(self, dataset: str, propname: str) -> None: ...

    def permissions(self, dataset: str) -> str: ...


#############################################################################
class ZfsCli:
    """ZfsBackend implementation that shells out to the zfs and df programs."""

    def __init__(self, runner: CommandRunner, zfs_program: str = "zfs", df_program: str = "df") -> None:
        self.runner: CommandRunner = runner
        self.zfs_program: str = zfs_program
        self.df_program: str = df_program

    @property
    def history(self) -> list[str]:
        return self.runner.history

    def is_usable(self) -> bool:
        """Returns True if the zfs program is installed and works; 'zfs version' doesn't exist before OpenZFS 0.8."""
        if self.runner.query([self.zfs_program, "version"]).returncode == 0:
            return True
        return self.runner.query([self.zfs_program, "list", "-H", "-d", "0", "-o", "name"]).returncode == 0

    def resolve_backing_dataset(self, path: str) -> MountInfo | None:
        """Returns the backing device and mount root of ``path`` per 'df -P', or None if path can't be looked up."""
        proc = self.runner.query([self.df_program, "-P", path])
        if proc.returncode != 0:
            return None
        return parse_df_output(proc.stdout)

    def dataset_exists(self, dataset: str) -> bool:
        proc = self.runner.query([self.zfs_program, "list", "-H", "-o", "name", dataset])
        return proc.returncode == 0

    def get_property(self, dataset: str, propname: str) -> str | None:
        """Returns the value of the given property, or None if the dataset does not exist."""
        proc = self.runner.query([self.zfs_program, "get", "-H", "-p", "-o", "value", propname, dataset])
        if proc.returncode != 0:
            return None
        return proc.stdout.rstrip("\n")

    def list_local_properties(self, dataset: str) -> dict[str, str]:
        """Returns the properties that are set locally or were received, as opposed to inherited defaults."""
        cmd = [self.zfs_program, "get", "-H", "-p", "-o", "property,value", "-s", "local,received", "all", dataset]
        proc = self.runner.query(cmd)
        if proc.returncode != 0:
            self.runner.log.warning("Cannot list properties of %s: %s", dataset, stderr_to_str(proc.stderr).strip())
            return {}
        return parse_property_lines(proc.stdout)

    def snapshot(self, snapshot: str, recursive: bool = True) -> None:
        cmd = [self.zfs_program, "snapshot"] + (["-r"] if recursive else []) + [snapshot]
        self.runner.run(cmd, level=logging.INFO)

    def clone(self, snapshot: str, dataset: str, properties: dict[str, str]) -> None:
        cmd = [self.zfs_program, "clone"] + _property_opts(properties) + [snapshot, dataset]
        self.runner.run(cmd, level=logging.INFO)

    def create(self, dataset: str, properties: dict[str, str]) -> None:
        cmd = [self.zfs_program, "create"] + _property_opts(properties) + [dataset]
        self.runner.run(cmd, level=logging.INFO)

    def set_property(self, dataset: str, propname: str, value: str) -> None:
        self.runner.run([self.zfs_program, "set", f"{propname}={value}", dataset], level=LOG_DEBUG)

    def inherit_property(self, dataset: str, propname: str) -> None:
        self.runner.run([self.zfs_program, "inherit", propname, dataset], level=LOG_DEBUG)

    def permissions(self, dataset: str) -> str:
        """Returns the output of 'zfs allow' for the dataset, or a description of why it is unavailable."""
        proc = self.runner.query([self.zfs_program, "allow", dataset])
        if proc.returncode != 0:
            return f"(unavailable: {stderr_to_str(proc.stderr).strip()})"
        return proc.stdout.rstrip() or "(no delegated permissions)"


def _property_opts(properties: dict[str, str]) -> list[str]:
    opts: list[str] = []
    for propname, value in properties.items():
        opts += ["-o", f"{propname}={value}"]
    return opts


def parse_df_output(stdout: str) -> MountInfo | None:
    """Parses the POSIX output of 'df -P PATH'; the last line holds the filesystem that contains PATH.

    Example line: 'tank/proj  1024  100  924  10% /ws/proj'. The mount root is the sixth column and may contain spaces.
    """
    lines = [line for line in stdout.splitlines() if line.strip()]
    if len(lines) < 2:
        return None
    splits = lines[-1].split(None, 5)
    if len(splits) < 6:
        return None
    return MountInfo(source=splits[0], mountpoint=splits[5])


def parse_property_lines(stdout: str) -> dict[str, str]:
    """Parses 'zfs get -H -o property,value' output into a dict; skips the mount properties."""
    props: dict[str, str] = {}
    for line in stdout.splitlines():
        if "\t" not in line:
            continue
        propname, value = line.split("\t", 1)
        if propname not in MOUNT_PROPERTIES:
            props[propname] = value
    return props


def is_plausible_dataset_source(source: str) -> bool:
    """Returns False for df sources that can't be a ZFS dataset: empty, device paths, NFS 'host:/path', and swap."""
    if not source or source.startswith("/") or ":" in source or source == SWAP_DATASET:
        return False
    return is_valid_dataset_name(source)


def find_dataset_root(backend: ZfsBackend, path: str) -> MountInfo | None:
    """Returns the mount info if ``path`` is the mount root of an existing ZFS dataset; else None."""
    if not os.path.isdir(path):
        return None
    info: MountInfo | None = backend.resolve_backing_dataset(path)
    if info is None or not is_plausible_dataset_source(info.source):
        return None
    if os.path.realpath(info.mountpoint) != os.path.realpath(path):
        return None
    return info if backend.dataset_exists(info.source) else None


def default_mountpoint(backend: ZfsBackend, dataset: str) -> str | None:
    """Returns the mountpoint ZFS computes for a new dataset by inheritance from its parent, or None if not a path."""
    i: int = dataset.rfind("/")
    if i < 0:
        return None
    parent_mountpoint: str | None = backend.get_property(dataset[0:i], "mountpoint")
    if not parent_mountpoint or not parent_mountpoint.startswith("/"):
        return None  # parent is 'none' or 'legacy'
    return os.path.join(parent_mountpoint, dataset[i + 1 :])


def called_process_error_msg(e: subprocess.CalledProcessError) -> str:
    """Returns the stderr of the failed command, or a generic message if there is none."""
    stderr: str = stderr_to_str(e.stderr).strip() if e.stderr else ""
    return stderr or f"exit status {e.returncode}"
