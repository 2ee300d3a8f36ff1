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
"""Test case base classes used by most unit tests.

``AbstractTestCase`` provides consistent CLI argument parsing and Params construction. ``AbstractPoolTestCase`` also lays
out a fake pool in a fresh temporary directory: dataset 'tank' with child 'tank/ws', and a git working copy on its own
dataset 'tank/ws/proj'.
"""

from __future__ import annotations
import argparse
import logging
import os
import shutil
import tempfile
import unittest
from unittest.mock import MagicMock

from gitz_main import argparse_cli, configuration
from gitz_tests.fakes import FakeGit, FakeZfs


#############################################################################
class AbstractTestCase(unittest.TestCase):

    @staticmethod
    def argparser_parse_args(args: list[str]) -> argparse.Namespace:
        return argparse_cli.argument_parser().parse_args(args)

    @staticmethod
    def make_params(args: argparse.Namespace, log: logging.Logger | None = None) -> configuration.Params:
        log = log if log is not None else MagicMock(spec=logging.Logger)
        return configuration.Params(args=args, sys_argv=[], log=log, file_config={})


#############################################################################
class AbstractPoolTestCase(AbstractTestCase):

    def setUp(self) -> None:
        self.root: str = os.path.realpath(tempfile.mkdtemp(prefix="gitz_test_"))
        self.addCleanup(shutil.rmtree, self.root, True)
        self.zfs: FakeZfs = FakeZfs(self.root)
        self.git: FakeGit = FakeGit()
        self.zfs.add_dataset("tank")
        self.ws: str = self.zfs.add_dataset("tank/ws")
        self.proj: str = self.make_working_copy("tank/ws/proj", compression="lz4")

    def make_working_copy(self, dataset: str, mountpoint: str | None = None, **props: str) -> str:
        """Creates a dataset whose mount root holds a git working copy; returns the mountpoint."""
        mountpoint = self.zfs.add_dataset(dataset, mountpoint, **props)
        os.makedirs(os.path.join(mountpoint, ".git"), exist_ok=True)
        with open(os.path.join(mountpoint, "README"), "w", encoding="utf-8") as fd:
            fd.write("hello\n")
        return mountpoint

    def make_dir(self, *names: str) -> str:
        path = os.path.join(self.root, *names)
        os.makedirs(path, exist_ok=True)
        return path
