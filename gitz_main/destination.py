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
"""Derives the ZFS dataset that a git-zclone DEST path maps to.

Resolution runs an ordered list of strategies; the first one that returns a DestinationSpec wins, a strategy that does not
apply returns None, and a strategy that detects an input shape it must refuse dies. In order:

1. dataset-root: DEST already is the mount root of a dataset, which is reused as is.
2. parent-dataset-root: the parent directory of DEST is the mount root of a dataset, so DEST becomes a child dataset.
3. nested-remote: for remote sources only, the grandparent of DEST is a dataset root but its parent is a plain directory
   inside that dataset. There is no dataset to attach DEST to without misplacing it, so this dies with DIE_STATUS.
4. sibling: for local sources, DEST becomes a sibling of the source dataset; for remote sources, a child of the dataset that
   backs the current working directory.

Whenever the mountpoint that ZFS would compute by inheritance differs from the literal DEST path, the literal path is kept
as an explicit mountpoint override.
"""

from __future__ import (
    annotations,
)
import os
from dataclasses import (
    dataclass,
)
from typing import (
    Callable,
    Final,
    Sequence,
)

from gitz_main.source import (
    SourceSpec,
)
from gitz_main.utils import (
    DIE_STATUS,
    FAILURE_STATUS,
    dataset_parent,
    die,
    validate_dataset_name,
)
from gitz_main.zfs import (
    MountInfo,
    ZfsBackend,
    default_mountpoint,
    find_dataset_root,
    is_plausible_dataset_source,
)


@dataclass(frozen=True)
class DestinationSpec:
    """The dataset a clone goes into; mountpoint_override is None if ZFS's inherited default already matches the path."""

    requested_path: str
    resolved_dataset: str
    mountpoint_override: str | None = None
    strategy: str = ""


Strategy = Callable[[str, SourceSpec, ZfsBackend], "DestinationSpec | None"]


def _override_for(backend: ZfsBackend, dataset: str, requested_path: str) -> str | None:
    """Returns the literal requested path if the default mountpoint of ``dataset`` would not match it; else None."""
    return None if default_mountpoint(backend, dataset) == requested_path else requested_path


def dataset_root_strategy(requested_path: str, source: SourceSpec, backend: ZfsBackend) -> DestinationSpec | None:
    """DEST itself is a mounted dataset root."""
    info: MountInfo | None = find_dataset_root(backend, requested_path)
    if info is None:
        return None
    return DestinationSpec(requested_path, info.source, None, "dataset-root")


def parent_dataset_root_strategy(requested_path: str, source: SourceSpec, backend: ZfsBackend) -> DestinationSpec | None:
    """The parent of DEST is a mounted dataset root; DEST becomes its child dataset."""
    info: MountInfo | None = find_dataset_root(backend, os.path.dirname(requested_path))
    if info is None:
        return None
    dataset = f"{info.source}/{os.path.basename(requested_path)}"
    validate_dataset_name(dataset, requested_path)
    return DestinationSpec(requested_path, dataset, _override_for(backend, dataset, requested_path), "parent-dataset-root")


def nested_remote_strategy(requested_path: str, source: SourceSpec, backend: ZfsBackend) -> DestinationSpec | None:
    """Refuses a remote clone into a plain directory that lives inside a dataset two levels up."""
    if source.is_local:
        return None
    parent: str = os.path.dirname(requested_path)
    grandparent: str = os.path.dirname(parent)
    if parent == grandparent:
        return None  # DEST is directly below the filesystem root
    info: MountInfo | None = find_dataset_root(backend, grandparent)
    if info is None:
        return None
    die(
        f"Cannot resolve a dataset for {requested_path}: its parent {parent} is a plain directory inside dataset "
        f"{info.source}. Create {parent} as a dataset first, or clone into {grandparent} directly.",
        DIE_STATUS,
    )


def sibling_strategy(requested_path: str, source: SourceSpec, backend: ZfsBackend) -> DestinationSpec | None:
    """Local: a sibling of the source dataset. Remote: a child of the dataset backing the current working directory."""
    basename: str = os.path.basename(requested_path)
    if source.is_local:
        assert source.resolved_dataset is not None
        container: str = dataset_parent(source.resolved_dataset)
        if not container:
            die(
                f"Cannot resolve a dataset for {requested_path}: source dataset {source.resolved_dataset} is a pool root "
                "without a parent to create a sibling in.",
                DIE_STATUS,
            )
    else:
        cwd: str = os.getcwd()
        info: MountInfo | None = backend.resolve_backing_dataset(cwd)
        container = "" if info is None else info.source
        if not is_plausible_dataset_source(container) or not backend.dataset_exists(container):
            die(
                f"Remote clones require a backing ZFS dataset, but the current directory {cwd} is backed by "
                f"'{container}'. Change into a directory on a ZFS dataset, or choose a DEST whose parent is a dataset.",
                FAILURE_STATUS,
            )
    dataset = f"{container}/{basename}"
    validate_dataset_name(dataset, requested_path)
    return DestinationSpec(requested_path, dataset, _override_for(backend, dataset, requested_path), "sibling")


STRATEGIES: Final[tuple[Strategy, ...]] = (
    dataset_root_strategy,
    parent_dataset_root_strategy,
    nested_remote_strategy,
    sibling_strategy,
)


def resolve_destination(
    dest: str, source: SourceSpec, backend: ZfsBackend, strategies: Sequence[Strategy] = STRATEGIES
) -> DestinationSpec:
    """Returns the DestinationSpec produced by the first matching strategy."""
    requested_path: str = os.path.abspath(dest)  # literal, symlinks are not resolved
    if requested_path == os.path.dirname(requested_path):
        die(f"Invalid destination: {dest}", FAILURE_STATUS)
    for strategy in strategies:
        spec: DestinationSpec | None = strategy(requested_path, source, backend)
        if spec is not None:
            return spec
    die(f"Cannot resolve a dataset for destination: {dest}", DIE_STATUS)
