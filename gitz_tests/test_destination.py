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
"""Unit tests for deriving the destination dataset of git-zclone from the DEST path."""

from __future__ import (
    annotations,
)
import os
import unittest
from unittest.mock import (
    patch,
)

from gitz_main.destination import (
    DestinationSpec,
    resolve_destination,
)
from gitz_main.source import (
    SourceKind,
    SourceSpec,
    classify_source,
)
from gitz_main.utils import (
    DIE_STATUS,
    FAILURE_STATUS,
)
from gitz_main.zfs import (
    MountInfo,
)
from gitz_tests.abstract_testcase import (
    AbstractPoolTestCase,
)

REMOTE: SourceSpec = SourceSpec(SourceKind.REMOTE, "https://example.com/team/repo.git")


#############################################################################
def suite() -> unittest.TestSuite:
    test_cases = [
        TestLocalDestination,
        TestRemoteDestination,
    ]
    return unittest.TestSuite(unittest.TestLoader().loadTestsFromTestCase(test_case) for test_case in test_cases)


#############################################################################
class TestLocalDestination(AbstractPoolTestCase):

    def setUp(self) -> None:
        super().setUp()
        self.source: SourceSpec = classify_source(self.proj, self.zfs)

    def assert_exit(self, dest: str, exit_code: int, source: SourceSpec | None = None) -> str:
        with self.assertRaises(SystemExit) as context:
            resolve_destination(dest, source or self.source, self.zfs)
        self.assertEqual(exit_code, context.exception.code)
        self.assertEqual([], self.zfs.history)
        return str(context.exception)

    def test_dest_is_existing_dataset_root(self) -> None:
        dest = self.zfs.add_dataset("tank/ws/proj2")
        spec = resolve_destination(dest, self.source, self.zfs)
        self.assertEqual(DestinationSpec(dest, "tank/ws/proj2", None, "dataset-root"), spec)

    def test_parent_is_dataset_root_without_override(self) -> None:
        dest = os.path.join(self.ws, "proj-bugfix")
        spec = resolve_destination(dest, self.source, self.zfs)
        self.assertEqual(DestinationSpec(dest, "tank/ws/proj-bugfix", None, "parent-dataset-root"), spec)

    def test_parent_is_dataset_root_reached_via_symlink_keeps_literal_path(self) -> None:
        link = os.path.join(self.root, "link")
        os.symlink(self.ws, link)
        dest = os.path.join(link, "proj2")
        spec = resolve_destination(dest, self.source, self.zfs)
        self.assertEqual("tank/ws/proj2", spec.resolved_dataset)
        self.assertEqual(dest, spec.mountpoint_override)
        self.assertEqual("parent-dataset-root", spec.strategy)

    def test_sibling_of_source_dataset(self) -> None:
        other = self.make_dir("other")
        dest = os.path.join(other, "proj2")
        spec = resolve_destination(dest, self.source, self.zfs)
        self.assertEqual(DestinationSpec(dest, "tank/ws/proj2", dest, "sibling"), spec)

    def test_sibling_of_nested_plain_directory(self) -> None:
        os.makedirs(os.path.join(self.ws, "sub"))
        dest = os.path.join(self.ws, "sub", "proj2")
        spec = resolve_destination(dest, self.source, self.zfs)
        self.assertEqual(DestinationSpec(dest, "tank/ws/proj2", dest, "sibling"), spec)

    def test_relative_dest_is_made_absolute(self) -> None:
        cwd = os.getcwd()
        os.chdir(self.ws)
        try:
            spec = resolve_destination("proj2", self.source, self.zfs)
        finally:
            os.chdir(cwd)
        self.assertEqual(os.path.join(self.ws, "proj2"), spec.requested_path)
        self.assertEqual("tank/ws/proj2", spec.resolved_dataset)

    def test_pool_root_source_is_unresolvable(self) -> None:
        pool_mountpoint = self.make_working_copy("pool2")
        source = classify_source(pool_mountpoint, self.zfs)
        msg = self.assert_exit(os.path.join(self.make_dir("other"), "x"), DIE_STATUS, source)
        self.assertIn("pool root", msg)

    def test_filesystem_root_is_invalid(self) -> None:
        self.assert_exit("/", FAILURE_STATUS)

    def test_invalid_dataset_name(self) -> None:
        self.assert_exit(os.path.join(self.ws, "bad;name"), FAILURE_STATUS)

    def test_no_matching_strategy(self) -> None:
        with self.assertRaises(SystemExit) as context:
            resolve_destination(os.path.join(self.ws, "x"), self.source, self.zfs, strategies=[])
        self.assertEqual(DIE_STATUS, context.exception.code)


#############################################################################
class TestRemoteDestination(AbstractPoolTestCase):

    def test_parent_is_dataset_root(self) -> None:
        cwd = os.getcwd()
        os.chdir(self.ws)
        try:
            spec = resolve_destination("./repo", REMOTE, self.zfs)
        finally:
            os.chdir(cwd)
        self.assertEqual(DestinationSpec(os.path.join(self.ws, "repo"), "tank/ws/repo", None, "parent-dataset-root"), spec)

    def test_dest_is_existing_empty_dataset(self) -> None:
        dest = self.zfs.add_dataset("tank/ws/repo")
        self.assertEqual("dataset-root", resolve_destination(dest, REMOTE, self.zfs).strategy)

    def test_nested_plain_directory_is_unresolvable(self) -> None:
        os.makedirs(os.path.join(self.ws, "sub"))
        with self.assertRaises(SystemExit) as context:
            resolve_destination(os.path.join(self.ws, "sub", "repo"), REMOTE, self.zfs)
        self.assertEqual(DIE_STATUS, context.exception.code)
        self.assertIn("plain directory inside dataset tank/ws", str(context.exception))

    def test_child_of_cwd_dataset(self) -> None:
        dest = os.path.join(self.make_dir("a", "b"), "repo")
        with patch("os.getcwd", return_value=self.ws):
            spec = resolve_destination(dest, REMOTE, self.zfs)
        self.assertEqual(DestinationSpec(dest, "tank/ws/repo", dest, "sibling"), spec)

    def test_child_of_cwd_dataset_from_subdirectory(self) -> None:
        subdir = os.path.join(self.proj, "src")
        os.mkdir(subdir)
        dest = os.path.join(self.make_dir("a"), "repo")
        with patch("os.getcwd", return_value=subdir):
            spec = resolve_destination(dest, REMOTE, self.zfs)
        self.assertEqual("tank/ws/proj/repo", spec.resolved_dataset)

    def test_implausible_cwd_dataset_fails_before_side_effects(self) -> None:
        plain = self.make_dir("plain")
        dest = os.path.join(self.make_dir("a"), "repo")
        for fallback in [None, MountInfo("/dev/sda1", "/"), MountInfo("nfshost:/export", plain), MountInfo("swap", plain)]:
            with self.subTest(fallback=fallback):
                self.zfs.fallback = fallback
                with patch("os.getcwd", return_value=plain):
                    with self.assertRaises(SystemExit) as context:
                        resolve_destination(dest, REMOTE, self.zfs)
                self.assertEqual(FAILURE_STATUS, context.exception.code)
                self.assertIn("Remote clones require a backing ZFS dataset", str(context.exception))
                self.assertEqual([], self.zfs.history)
