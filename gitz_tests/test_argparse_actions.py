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
"""Unit tests for the CLI parsers and custom argparse actions."""

from __future__ import (
    annotations,
)
import unittest

from gitz_main.argparse_cli import (
    PULLALL_PROG_NAME,
    PUSHALL_PROG_NAME,
    __version__,
    argument_parser,
    pullall_argument_parser,
)
from gitz_tests.tools import (
    argparse_error,
    parse_args_until_exit,
)


#############################################################################
def suite() -> unittest.TestSuite:
    test_cases = [
        TestZcloneArgumentParser,
        TestPullallArgumentParser,
    ]
    return unittest.TestSuite(unittest.TestLoader().loadTestsFromTestCase(test_case) for test_case in test_cases)


#############################################################################
class TestZcloneArgumentParser(unittest.TestCase):

    def test_positional_arguments_and_defaults(self) -> None:
        args = argument_parser().parse_args(["/ws/proj", "/ws/proj2"])
        self.assertEqual("/ws/proj", args.source)
        self.assertEqual("/ws/proj2", args.dest)
        self.assertFalse(args.dryrun)
        self.assertEqual(0, args.verbose)
        self.assertFalse(args.quiet)
        for name in ["snapshot_prefix", "allow_perms", "zfs_program", "df_program", "git_program", "config"]:
            self.assertIsNone(getattr(args, name), name)

    def test_options(self) -> None:
        args = argument_parser().parse_args(
            ["-n", "-vv", "--snapshot-prefix", " wip_ ", "--zfs-program", "/sbin/zfs", "--git-program", "git2", "a", "b"]
        )
        self.assertTrue(args.dryrun)
        self.assertEqual(2, args.verbose)
        self.assertEqual("wip_", args.snapshot_prefix)
        self.assertEqual("/sbin/zfs", args.zfs_program)
        self.assertEqual("git2", args.git_program)

    def test_missing_positional_arguments(self) -> None:
        self.assertIn("required", argparse_error(argument_parser(), ["/ws/proj"]))

    def test_empty_string_is_rejected(self) -> None:
        self.assertIn("Empty string is not valid", argparse_error(argument_parser(), ["--snapshot-prefix", " ", "a", "b"]))

    def test_invalid_program_names_are_rejected(self) -> None:
        for program in ["zfs; rm -rf /", "my zfs", "$(zfs)", ""]:
            with self.subTest(program=program):
                error = argparse_error(argument_parser(), ["--zfs-program", program, "a", "b"])
                self.assertIn("Invalid program name", error)

    def test_abbreviations_are_not_allowed(self) -> None:
        self.assertIn("unrecognized arguments", argparse_error(argument_parser(), ["--dry", "a", "b"]))

    def test_version(self) -> None:
        code, out, _ = parse_args_until_exit(argument_parser(), ["--version"])
        self.assertEqual(0, code)
        self.assertIn(__version__, out)

    def test_help_mentions_exit_codes(self) -> None:
        self.assertIn("Exit status is 0 on success", argument_parser().format_help())


#############################################################################
class TestPullallArgumentParser(unittest.TestCase):

    def test_defaults(self) -> None:
        args = pullall_argument_parser().parse_args([])
        self.assertIsNone(args.remote)
        self.assertEqual(".", args.directory)
        self.assertIsNone(args.git_program)
        self.assertEqual(PULLALL_PROG_NAME, pullall_argument_parser().prog)

    def test_remote_is_repeatable(self) -> None:
        args = pullall_argument_parser().parse_args(["--remote", "origin", "--remote", "backup", "-C", "/ws/proj"])
        self.assertEqual(["origin", "backup"], args.remote)
        self.assertEqual("/ws/proj", args.directory)

    def test_invalid_remote_names_are_rejected(self) -> None:
        for remote in ["-f", "a b", "a..b", ""]:
            with self.subTest(remote=remote):
                self.assertIn("Invalid git remote name", argparse_error(pullall_argument_parser(), [f"--remote={remote}"]))

    def test_pushall_description(self) -> None:
        parser = pullall_argument_parser(PUSHALL_PROG_NAME)
        self.assertEqual(PUSHALL_PROG_NAME, parser.prog)
        self.assertIn("pushes the current branch", parser.format_help())
