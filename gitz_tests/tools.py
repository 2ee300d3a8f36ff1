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
"""Test helpers shared by the gitz test modules: in-memory loggers, argparse exit capture and the suite() audit."""

from __future__ import (
    annotations,
)
import argparse
import contextlib
import inspect
import io
import types
import unittest
from logging import (
    Logger,
)

from gitz_main.loggers import (
    get_simple_logger,
    reset_logger,
)
from gitz_main.utils import (
    LOG_TRACE,
)


def string_logger(testcase: unittest.TestCase, program: str, level: int = LOG_TRACE) -> tuple[Logger, io.StringIO]:
    """Returns a gitz logger that writes into a StringIO buffer; the logger is reset when ``testcase`` finishes."""
    stream = io.StringIO()
    log = get_simple_logger(program, level=level, stream=stream)
    testcase.addCleanup(reset_logger, log)
    return log, stream


def parse_args_until_exit(parser: argparse.ArgumentParser, args: list[str]) -> tuple[object, str, str]:
    """Runs ``parser`` on ``args``, which must make argparse exit; returns the exit code plus captured stdout and stderr."""
    out, err = io.StringIO(), io.StringIO()
    with contextlib.redirect_stdout(out), contextlib.redirect_stderr(err):
        try:
            parser.parse_args(args)
        except SystemExit as e:
            return e.code, out.getvalue(), err.getvalue()
    raise AssertionError(f"Expected {parser.prog} to exit on {args}")


def argparse_error(parser: argparse.ArgumentParser, args: list[str]) -> str:
    """Returns the usage error that ``parser`` prints when it rejects ``args`` with exit code 2."""
    code, _, err = parse_args_until_exit(parser, args)
    assert code == 2, code
    return err


def _suite_class_names(suite: unittest.TestSuite) -> set[str]:
    names: set[str] = set()
    for test in suite:
        if isinstance(test, unittest.TestSuite):
            names |= _suite_class_names(test)
        else:
            names.add(type(test).__name__)
    return names


#############################################################################
class TestSuiteCompleteness(unittest.TestCase):
    """Fails if a test module defines a Test* class that its suite() function leaves out, as test_all only runs suites."""

    def __init__(self, method_name: str = "runTest", modules: list[types.ModuleType] | None = None) -> None:
        super().__init__(method_name)
        self.modules: list[types.ModuleType] = modules or []

    def test_every_test_class_is_in_its_module_suite(self) -> None:
        orphans: list[str] = []
        for module in self.modules:
            defined: set[str] = {
                name
                for name, cls in inspect.getmembers(module, inspect.isclass)
                if name.startswith("Test") and issubclass(cls, unittest.TestCase) and cls.__module__ == module.__name__
            }
            orphans += [f"{module.__name__}.{name}" for name in sorted(defined - _suite_class_names(module.suite()))]
        self.assertEqual([], orphans, "Add these classes to the suite() of their module")
