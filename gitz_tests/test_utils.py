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
"""Unit tests for small helper functions used across gitz."""

from __future__ import (
    annotations,
)
import os
import shutil
import subprocess
import sys
import tempfile
import unittest
from datetime import (
    datetime,
    timedelta,
    timezone,
)
from unittest.mock import (
    patch,
)

from gitz_main.utils import (
    DIE_STATUS,
    EXISTS_STATUS,
    FAILURE_STATUS,
    dataset_parent,
    die,
    die_tool_unusable,
    dry,
    effective_user_name,
    getenv_any,
    is_empty_dir,
    is_valid_dataset_name,
    list_formatter,
    shell_join,
    stderr_to_str,
    subprocess_run,
    utc_timestamp,
    validate_dataset_name,
    xfinally,
)


#############################################################################
def suite() -> unittest.TestSuite:
    test_cases = [
        TestHelperFunctions,
        TestDatasetNames,
        TestXFinally,
    ]
    return unittest.TestSuite(unittest.TestLoader().loadTestsFromTestCase(test_case) for test_case in test_cases)


#############################################################################
class TestHelperFunctions(unittest.TestCase):

    def test_die_raises_system_exit_with_code(self) -> None:
        with self.assertRaises(SystemExit) as context:
            die("boom", EXISTS_STATUS)
        self.assertEqual(EXISTS_STATUS, context.exception.code)
        self.assertEqual("boom", str(context.exception))

    def test_die_defaults_to_die_status(self) -> None:
        with self.assertRaises(SystemExit) as context:
            die("boom")
        self.assertEqual(DIE_STATUS, context.exception.code)

    def test_die_tool_unusable(self) -> None:
        with self.assertRaises(SystemExit) as context:
            die_tool_unusable("zfs")
        self.assertEqual(EXISTS_STATUS, context.exception.code)
        self.assertIn("'zfs'", str(context.exception))

    def test_dry(self) -> None:
        self.assertEqual("Dry run", dry("run", is_dry_run=True))
        self.assertEqual("run", dry("run", is_dry_run=False))

    def test_getenv_any(self) -> None:
        with patch.dict(os.environ, {"gitz_foo": "bar"}):
            self.assertEqual("bar", getenv_any("foo"))
            self.assertEqual("dflt", getenv_any("missing", "dflt"))

    def test_effective_user_name_falls_back_to_numeric_uid(self) -> None:
        with patch("os.geteuid", return_value=987654), patch("pwd.getpwuid", side_effect=KeyError("uid not found")):
            self.assertEqual("987654", effective_user_name())
        self.assertTrue(effective_user_name())

    def test_list_formatter_is_lazy(self) -> None:
        items: list[str] = ["a"]
        formatter = list_formatter(items)
        items.append("b")
        self.assertEqual("a b", str(formatter))
        self.assertEqual("a,b", str(list_formatter(["a", "b"], separator=",")))
        self.assertEqual("a", str(list_formatter(["", "a"], lstrip=True)))

    def test_shell_join_quotes_arguments(self) -> None:
        self.assertEqual("zfs set 'mountpoint=/a b' tank/x", shell_join(["zfs", "set", "mountpoint=/a b", "tank/x"]))

    def test_stderr_to_str(self) -> None:
        self.assertEqual("x", stderr_to_str(b"x"))
        self.assertEqual("x", stderr_to_str("x"))

    def test_utc_timestamp(self) -> None:
        now = datetime(2024, 9, 3, 14, 26, 15, tzinfo=timezone(timedelta(hours=2)))
        self.assertEqual("2024-09-03_12:26:15Z", utc_timestamp(now))
        self.assertRegex(utc_timestamp(), r"^\d{4}-\d{2}-\d{2}_\d{2}:\d{2}:\d{2}Z$")

    def test_is_empty_dir(self) -> None:
        tmpdir = tempfile.mkdtemp()
        try:
            self.assertTrue(is_empty_dir(tmpdir))
            os.mkdir(os.path.join(tmpdir, ".git"))
            self.assertFalse(is_empty_dir(tmpdir))
        finally:
            shutil.rmtree(tmpdir)

    def test_subprocess_run(self) -> None:
        proc = subprocess_run([sys.executable, "-c", "print('hi')"], stdout=subprocess.PIPE, text=True)
        self.assertEqual(0, proc.returncode)
        self.assertEqual("hi\n", proc.stdout)
        with self.assertRaises(subprocess.CalledProcessError) as context:
            subprocess_run([sys.executable, "-c", "import sys; sys.exit(5)"], check=True)
        self.assertEqual(5, context.exception.returncode)

    def test_subprocess_run_rejects_input_with_stdin(self) -> None:
        with self.assertRaises(ValueError):
            subprocess_run([sys.executable, "-c", "pass"], input="x", stdin=subprocess.PIPE)


#############################################################################
class TestDatasetNames(unittest.TestCase):

    def test_is_valid_dataset_name(self) -> None:
        for name in ["tank", "tank/ws", "tank/ws/proj-bugfix", "tank/a b", "tank/x.y_z:1"]:
            self.assertTrue(is_valid_dataset_name(name), name)
        for name in ["", ".", "..", "/tank", "tank/", "tank//x", "tank/./x", "tank/../x", "tank/x$y", "1tank", "tank/a\tb"]:
            self.assertFalse(is_valid_dataset_name(name), name)

    def test_validate_dataset_name(self) -> None:
        validate_dataset_name("tank/ws", "/ws")
        with self.assertRaises(SystemExit) as context:
            validate_dataset_name("tank/a;b", "/ws/a;b")
        self.assertEqual(FAILURE_STATUS, context.exception.code)

    def test_dataset_parent(self) -> None:
        self.assertEqual("tank/a", dataset_parent("tank/a/b"))
        self.assertEqual("tank", dataset_parent("tank/a"))
        self.assertEqual("", dataset_parent("tank"))


#############################################################################
class TestXFinally(unittest.TestCase):

    def test_cleanup_runs_on_success(self) -> None:
        calls: list[str] = []
        with xfinally(lambda: calls.append("cleanup")):
            calls.append("body")
        self.assertEqual(["body", "cleanup"], calls)

    def test_cleanup_error_does_not_mask_body_error(self) -> None:
        def cleanup() -> None:
            raise RuntimeError("cleanup")

        with self.assertRaises(ValueError) as context:
            with xfinally(cleanup):
                raise ValueError("body")
        self.assertIsInstance(context.exception.__context__, RuntimeError)

    def test_cleanup_error_propagates_without_body_error(self) -> None:
        def cleanup() -> None:
            raise RuntimeError("cleanup")

        with self.assertRaises(RuntimeError):
            with xfinally(cleanup):
                pass
