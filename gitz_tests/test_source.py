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
"""Unit tests for classifying the FROM argument of git-zclone."""

from __future__ import (
    annotations,
)
import os
import unittest

from gitz_main.source import (
    SourceKind,
    SourceSpec,
    classify_source,
    classify_source_kind,
)
from gitz_main.utils import (
    FAILURE_STATUS,
)
from gitz_main.zfs import (
    MountInfo,
)
from gitz_tests.abstract_testcase import (
    AbstractPoolTestCase,
)


#############################################################################
def suite() -> unittest.TestSuite:
    test_cases = [
        TestClassifySourceKind,
        TestClassifySource,
    ]
    return unittest.TestSuite(unittest.TestLoader().loadTestsFromTestCase(test_case) for test_case in test_cases)


#############################################################################
class TestClassifySourceKind(unittest.TestCase):

    def test_urls_are_remote(self) -> None:
        for source in [
            "https://example.com/repo.git",
            "ssh://git@example.com:2222/x/repo.git",
            "git+ssh://example.com/repo",
            "file:///srv/git/repo.git",
            "git@github.com:team/repo.git",
            "example.com:repo.git",
        ]:
            self.assertEqual(SourceKind.REMOTE, classify_source_kind(source), source)

    def test_paths_are_local(self) -> None:
        for source in ["/ws/proj", "proj", "./proj", "../ws/proj", "C:proj", "dir/with:colon", "~/proj"]:
            self.assertEqual(SourceKind.LOCAL, classify_source_kind(source), source)

    def test_basename(self) -> None:
        self.assertEqual("proj", SourceSpec(SourceKind.LOCAL, "/ws/proj/").basename())
        self.assertEqual("repo", SourceSpec(SourceKind.REMOTE, "https://example.com/x/repo.git").basename())
        self.assertEqual("repo", SourceSpec(SourceKind.REMOTE, "example.com:repo.git").basename())
        self.assertEqual("repo", SourceSpec(SourceKind.REMOTE, "git@example.com:team/repo").basename())


#############################################################################
class TestClassifySource(AbstractPoolTestCase):

    def test_local_dataset_root(self) -> None:
        spec = classify_source(self.proj, self.zfs)
        self.assertEqual(SourceSpec(SourceKind.LOCAL, self.proj, "tank/ws/proj", self.proj), spec)
        self.assertTrue(spec.is_local)

    def test_relative_local_path_is_made_absolute(self) -> None:
        cwd = os.getcwd()
        os.chdir(self.ws)
        try:
            spec = classify_source("proj", self.zfs)
        finally:
            os.chdir(cwd)
        self.assertEqual(self.proj, spec.path_or_url)

    def test_classification_is_idempotent(self) -> None:
        for source in [self.proj, "https://example.com/repo.git"]:
            self.assertEqual(classify_source(source, self.zfs), classify_source(source, self.zfs))
        self.assertEqual([], self.zfs.history)

    def test_remote_is_not_validated_locally(self) -> None:
        spec = classify_source("git@example.com:team/repo.git", self.zfs)
        self.assertEqual(SourceSpec(SourceKind.REMOTE, "git@example.com:team/repo.git"), spec)
        self.assertIsNone(spec.resolved_dataset)

    def assert_exit(self, source: str, msg_part: str) -> None:
        with self.assertRaises(SystemExit) as context:
            classify_source(source, self.zfs)
        self.assertEqual(FAILURE_STATUS, context.exception.code)
        self.assertIn(msg_part, str(context.exception))
        self.assertEqual([], self.zfs.history)

    def test_missing_directory(self) -> None:
        self.assert_exit(os.path.join(self.ws, "nonexisting"), "not a directory")

    def test_directory_without_git_metadata(self) -> None:
        self.zfs.add_dataset("tank/ws/plain")
        self.assert_exit(os.path.join(self.ws, "plain"), "not a git working copy")

    def test_plain_directory_not_on_zfs(self) -> None:
        plain = self.make_dir("plain")
        os.mkdir(os.path.join(plain, ".git"))
        self.assert_exit(plain, "not on a mounted ZFS dataset")
        self.zfs.fallback = MountInfo("/dev/sda1", self.root)
        self.assert_exit(plain, "backed by: /dev/sda1")

    def test_subdirectory_of_dataset(self) -> None:
        subdir = os.path.join(self.ws, "sub")
        os.makedirs(os.path.join(subdir, ".git"))
        self.assert_exit(subdir, "must be the mountpoint of its ZFS dataset tank/ws")
