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
"""Classifies the FROM argument of git-zclone as a local working copy on a ZFS dataset, or as a remote git URL.

Classification is read-only. A remote source is an opaque connection string and is not validated locally. A local source
must be an existing directory with git metadata that is the mount root of an existing ZFS dataset, because that dataset is
what gets snapshotted and cloned.
"""

from __future__ import (
    annotations,
)
import enum
import os
import re
from dataclasses import (
    dataclass,
)
from typing import (
    Final,
)

from gitz_main.utils import (
    FAILURE_STATUS,
    die,
)
from gitz_main.zfs import (
    MountInfo,
    ZfsBackend,
    is_plausible_dataset_source,
)

URL_REGEX: Final[re.Pattern[str]] = re.compile(r"^[A-Za-z][A-Za-z0-9+.\-]*://")  # scheme://...
SCP_REGEX: Final[re.Pattern[str]] = re.compile(r"^(?:[^@/:]+@)?[^@/:]{2,}:")  # [user@]host:path, 'C:' is a drive letter


class SourceKind(enum.Enum):
    LOCAL = "local"
    REMOTE = "remote"


@dataclass(frozen=True)
class SourceSpec:
    """Where the clone comes from; resolved_dataset and mountpoint are only known for local sources."""

    kind: SourceKind
    path_or_url: str
    resolved_dataset: str | None = None
    mountpoint: str | None = None

    @property
    def is_local(self) -> bool:
        return self.kind is SourceKind.LOCAL

    def basename(self) -> str:
        """Returns the name of the working copy, e.g. 'repo' for both '/ws/repo' and 'https://host/x/repo.git'."""
        name = os.path.basename(self.path_or_url.rstrip("/"))
        if not self.is_local:
            name = name.rsplit(":", 1)[-1]  # host:repo.git
            name = name[: -len(".git")] if name.endswith(".git") else name
        return name


def classify_source_kind(source: str) -> SourceKind:
    """Returns REMOTE for 'scheme://...' and '[user@]host:path' strings, else LOCAL; a pure function of the string."""
    if URL_REGEX.match(source) or SCP_REGEX.match(source):
        return SourceKind.REMOTE
    return SourceKind.LOCAL


def classify_source(source: str, backend: ZfsBackend) -> SourceSpec:
    """Returns the SourceSpec for the FROM argument, or dies with exit status 1 if a local source is unusable."""
    if classify_source_kind(source) is SourceKind.REMOTE:
        return SourceSpec(SourceKind.REMOTE, source)

    path: str = os.path.abspath(source)
    if not os.path.isdir(path):
        die(f"Source is not a directory: {source}", FAILURE_STATUS)
    if not os.path.exists(os.path.join(path, ".git")):
        die(f"Source is not a git working copy (no .git found): {source}", FAILURE_STATUS)
    info: MountInfo | None = backend.resolve_backing_dataset(path)
    if info is None or not is_plausible_dataset_source(info.source) or not backend.dataset_exists(info.source):
        backing = "unknown" if info is None else info.source
        die(f"Source is not on a mounted ZFS dataset (backed by: {backing}): {source}", FAILURE_STATUS)
    if os.path.realpath(info.mountpoint) != os.path.realpath(path):
        die(
            f"Source must be the mountpoint of its ZFS dataset {info.source}, which is mounted at {info.mountpoint}: "
            f"{source}",
            FAILURE_STATUS,
        )
    return SourceSpec(SourceKind.LOCAL, path, resolved_dataset=info.source, mountpoint=info.mountpoint)
