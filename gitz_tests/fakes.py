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
"""In-memory stand-ins for the zfs and git CLIs, backed by real directories below a temporary root.

FakeZfs keeps datasets and their properties in dicts and "mounts" a dataset by creating its mountpoint directory; a clone
gets mounted by copying the directory tree of its origin dataset. FakeGit keeps remotes per working copy. Both record the
commands they were asked to run, and fail with CalledProcessError on the operations named in ``fail_on``.
"""

from __future__ import (
    annotations,
)
import os
import shutil
import subprocess

from gitz_main.zfs import (
    MountInfo,
)


#############################################################################
class FakeZfs:
    """ZfsBackend whose datasets are dict entries and whose mounts are plain directories."""

    def __init__(self, root: str) -> None:
        self.root: str = root
        self.datasets: dict[str, dict[str, str]] = {}
        self.clone_origins: dict[str, str] = {}  # dataset -> snapshot, until the clone gets mounted
        self.snapshots: list[str] = []
        self.history: list[str] = []
        self.fail_on: dict[str, str] = {}  # operation name -> stderr of the simulated failure
        self.fallback: MountInfo | None = None  # what df reports for paths outside of any dataset
        self.usable: bool = True
        self.allow_output: str = "(no delegated permissions)"

    def add_dataset(self, dataset: str, mountpoint: str | None = None, **props: str) -> str:
        """Creates a mounted dataset for test setup, bypassing history and failure injection; returns its mountpoint."""
        mountpoint = mountpoint or self._default_mountpoint(dataset)
        self.datasets[dataset] = {"mountpoint": mountpoint, **props}
        os.makedirs(mountpoint, exist_ok=True)
        return mountpoint

    def _default_mountpoint(self, dataset: str) -> str:
        parent, _, name = dataset.rpartition("/")
        if not parent:
            return os.path.join(self.root, dataset)
        return os.path.join(self.datasets[parent]["mountpoint"], name)

    def _record(self, op: str, cmd: list[str]) -> None:
        self.history.append(" ".join(cmd))
        if op in self.fail_on:
            raise subprocess.CalledProcessError(1, cmd, output="", stderr=self.fail_on[op])

    def _mount(self, dataset: str) -> None:
        mountpoint = self.datasets[dataset].get("mountpoint", "none")
        if not mountpoint.startswith("/"):
            return
        os.makedirs(mountpoint, exist_ok=True)
        origin = self.clone_origins.pop(dataset, None)
        if origin is not None:
            origin_mountpoint = self.datasets[origin.split("@", 1)[0]]["mountpoint"]
            shutil.copytree(origin_mountpoint, mountpoint, symlinks=True, dirs_exist_ok=True)

    def is_usable(self) -> bool:
        return self.usable

    def resolve_backing_dataset(self, path: str) -> MountInfo | None:
        real_path = os.path.realpath(path)
        best: MountInfo | None = None
        for dataset, props in self.datasets.items():
            mountpoint = props.get("mountpoint", "none")
            if not mountpoint.startswith("/") or dataset in self.clone_origins:
                continue
            real_mountpoint = os.path.realpath(mountpoint)
            if real_path == real_mountpoint or real_path.startswith(real_mountpoint.rstrip(os.sep) + os.sep):
                if best is None or len(real_mountpoint) > len(os.path.realpath(best.mountpoint)):
                    best = MountInfo(dataset, mountpoint)
        return best if best is not None else self.fallback

    def dataset_exists(self, dataset: str) -> bool:
        return dataset in self.datasets

    def get_property(self, dataset: str, propname: str) -> str | None:
        if dataset not in self.datasets:
            return None
        return self.datasets[dataset].get(propname, "-")

    def list_local_properties(self, dataset: str) -> dict[str, str]:
        return dict(self.datasets.get(dataset, {}))

    def snapshot(self, snapshot: str, recursive: bool = True) -> None:
        self._record("snapshot", ["zfs", "snapshot"] + (["-r"] if recursive else []) + [snapshot])
        assert snapshot.split("@", 1)[0] in self.datasets
        self.snapshots.append(snapshot)

    def clone(self, snapshot: str, dataset: str, properties: dict[str, str]) -> None:
        opts = [f"-o {k}={v}" for k, v in properties.items()]
        self._record("clone", ["zfs", "clone"] + opts + [snapshot, dataset])
        assert snapshot in self.snapshots
        self.datasets[dataset] = {"mountpoint": "none", **properties}
        self.clone_origins[dataset] = snapshot

    def create(self, dataset: str, properties: dict[str, str]) -> None:
        opts = [f"-o {k}={v}" for k, v in properties.items()]
        self._record("create", ["zfs", "create"] + opts + [dataset])
        self.datasets[dataset] = {"mountpoint": properties.get("mountpoint") or self._default_mountpoint(dataset)}
        self._mount(dataset)

    def set_property(self, dataset: str, propname: str, value: str) -> None:
        self._record("set " + propname, ["zfs", "set", f"{propname}={value}", dataset])
        self.datasets[dataset][propname] = value
        if propname == "mountpoint":
            self._mount(dataset)

    def inherit_property(self, dataset: str, propname: str) -> None:
        self._record("inherit " + propname, ["zfs", "inherit", propname, dataset])
        if propname == "mountpoint":
            self.datasets[dataset][propname] = self._default_mountpoint(dataset)
            self._mount(dataset)
        else:
            self.datasets[dataset].pop(propname, None)

    def permissions(self, dataset: str) -> str:
        return self.allow_output


#############################################################################
class FakeGit:
    """GitBackend that tracks remotes and upstreams per working copy; a working copy starts out with ``default_remotes``."""

    def __init__(self) -> None:
        self.default_remotes: dict[str, str] = {"origin": "https://example.com/team/proj.git"}
        self.remotes_by_dir: dict[str, dict[str, str]] = {}
        self.upstreams: dict[tuple[str, str], str] = {}
        self.branch: str | None = "main"
        self.calls: list[tuple[str, ...]] = []
        self.fail_on: dict[str, str] = {}  # operation name -> stderr of the simulated failure
        self.usable: bool = True

    def _record(self, op: str, *args: str) -> None:
        self.calls.append((op,) + args)
        if op in self.fail_on:
            raise subprocess.CalledProcessError(1, ["git", op] + list(args), output="", stderr=self.fail_on[op])

    def _remotes(self, workdir: str) -> dict[str, str]:
        return self.remotes_by_dir.setdefault(os.path.realpath(workdir), dict(self.default_remotes))

    def is_usable(self) -> bool:
        return self.usable

    def clone(self, url: str, directory: str) -> None:
        self._record("clone", url, directory)
        os.makedirs(os.path.join(directory, ".git"), exist_ok=True)
        self.remotes_by_dir[os.path.realpath(directory)] = {"origin": url}

    def remotes(self, workdir: str) -> list[str]:
        self._record("remote", workdir)
        return list(self._remotes(workdir))

    def remove_remote(self, workdir: str, name: str) -> None:
        self._record("remote remove", workdir, name)
        del self._remotes(workdir)[name]

    def rename_remote(self, workdir: str, old_name: str, new_name: str) -> None:
        self._record("remote rename", workdir, old_name, new_name)
        remotes = self._remotes(workdir)
        remotes[new_name] = remotes.pop(old_name)

    def add_remote(self, workdir: str, name: str, url: str) -> None:
        self._record("remote add", workdir, name, url)
        remotes = self._remotes(workdir)
        if name in remotes:
            cmd = ["git", "remote", "add", name, url]
            raise subprocess.CalledProcessError(3, cmd, stderr=f"remote {name} already exists")
        remotes[name] = url

    def fetch(self, workdir: str, remote: str) -> None:
        self._record("fetch", workdir, remote)

    def current_branch(self, workdir: str) -> str | None:
        return self.branch

    def set_upstream(self, workdir: str, branch: str, remote: str) -> None:
        self._record("set_upstream", workdir, branch, remote)
        self.upstreams[(os.path.realpath(workdir), branch)] = f"{remote}/{branch}"

    def pull_ff_only(self, workdir: str, remote: str, branch: str) -> None:
        self._record("pull " + remote, workdir, branch)

    def push(self, workdir: str, remote: str, branch: str) -> None:
        self._record("push " + remote, workdir, branch)
