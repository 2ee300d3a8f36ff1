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
"""Custom argparse actions shared by the gitz CLIs."""

from __future__ import (
    annotations,
)
import argparse
from typing import (
    Any,
    final,
)

from gitz_main.utils import (
    SHELL_CHARS,
)


#############################################################################
@final
class NonEmptyStringAction(argparse.Action):
    """Argparse action rejecting empty string values."""

    def __call__(
        self, parser: argparse.ArgumentParser, namespace: argparse.Namespace, values: Any, option_string: str | None = None
    ) -> None:
        """Strip whitespace and reject empty values."""
        values = values.strip()
        if values == "":
            parser.error(f"{option_string}: Empty string is not valid")
        setattr(namespace, self.dest, values)


#############################################################################
@final
class ProgramNameAction(argparse.Action):
    """Ensures program names contain no whitespace and no shell metacharacters."""

    def __call__(
        self, parser: argparse.ArgumentParser, namespace: argparse.Namespace, values: Any, option_string: str | None = None
    ) -> None:
        """Rejects program names that can't be passed as argv[0] safely."""
        if not values or any(char.isspace() or char in SHELL_CHARS for char in values):
            parser.error(f"{option_string}: Invalid program name '{values}'")
        setattr(namespace, self.dest, values)


#############################################################################
@final
class RemoteNameAction(argparse.Action):
    """Collects git remote names, rejecting names that git itself would reject or misinterpret as options."""

    def __call__(
        self, parser: argparse.ArgumentParser, namespace: argparse.Namespace, values: Any, option_string: str | None = None
    ) -> None:
        """Appends the validated remote name to the list of remotes."""
        if not values or values.startswith("-") or any(char.isspace() for char in values) or ".." in values:
            parser.error(f"{option_string}: Invalid git remote name '{values}'")
        remotes: list[str] = getattr(namespace, self.dest, None) or []
        setattr(namespace, self.dest, remotes + [values])
