#
# showref - Show refs in a local git repository
# Copyright (C) 2026 The showref contributors
#
# SPDX-License-Identifier: Apache-2.0 OR GPL-2.0-or-later
# showref is dual-licensed under the Apache License, Version 2.0 and the GNU
# General Public License as published by the Free Software Foundation; version 2.0
# or (at your option) any later version. You can redistribute it and/or
# modify it under the terms of either of these two licenses.
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
#
# You should have received a copy of the licenses; if not, see
# <http://www.gnu.org/licenses/> for a copy of the GNU General Public License
# and <http://www.apache.org/licenses/LICENSE-2.0> for a copy of the Apache
# License, Version 2.0.
#

"""Command-line interface to showref.

The single command mirrors git show-ref: it lists the refs matching
patterns, verifies refs by exact name, or filters a list of refs read from
standard input against the refs that exist locally.
"""

__all__ = [
    "Command",
    "cmd_show_ref",
    "main",
]

import argparse
import logging
import os
import signal
import sys
import types
from collections.abc import Sequence

from . import porcelain
from .errors import ApplyDeltaError, FileFormatException, NotGitRepository
from .log_utils import default_logging_config
from .objects import HEX_LENGTH
from .repo import Repo, UnsupportedExtension, UnsupportedVersion

logger = logging.getLogger(__name__)

MINIMUM_ABBREV = 4

EXIT_SUCCESS = 0
EXIT_NO_MATCH = 1
EXIT_FATAL = 128
# What a shell reports for git killed by SIGPIPE
EXIT_BROKEN_PIPE = 128 + 13

# Options whose argument is optional and, as in git, must be attached with
# "=". They are rewritten to a flag plus a hidden option carrying the value.
_OPTIONAL_ARGUMENT_OPTIONS = {
    "--hash": "--hash-length",
    "--abbrev": "--abbrev-length",
    "--exclude-existing": "--exclude-pattern",
}


def signal_int(signal: int, frame: types.FrameType | None) -> None:
    """Handle interrupt signal by exiting.

    Args:
        signal: Signal number
        frame: Current stack frame
    """
    sys.exit(1)


def signal_quit(signal: int, frame: types.FrameType | None) -> None:
    """Handle quit signal by entering debugger.

    Args:
        signal: Signal number
        frame: Current stack frame
    """
    import pdb

    pdb.set_trace()


def parse_abbrev(value: str) -> int:
    """Parse an abbreviation length the way git does.

    Non-zero values are clamped to the range [4, 40]; 0 means full ids.
    """
    try:
        abbrev = int(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(
            f"expects a numerical value, got {value!r}"
        ) from exc
    if abbrev and abbrev < MINIMUM_ABBREV:
        return MINIMUM_ABBREV
    return min(abbrev, HEX_LENGTH)


def _expand_optional_arguments(args: Sequence[str]) -> list[str]:
    """Rewrite attached optional option-arguments into separate options.

    "--hash=4" becomes "--hash --hash-length=4" and "-s4" becomes
    "-s --hash-length=4"; everything after "--" is left alone.
    """
    ret: list[str] = []
    for i, arg in enumerate(args):
        if arg == "--":
            ret.extend(args[i:])
            break
        name, sep, value = arg.partition("=")
        if sep and name in _OPTIONAL_ARGUMENT_OPTIONS:
            ret.append(name)
            ret.append(f"{_OPTIONAL_ARGUMENT_OPTIONS[name]}={value}")
        elif arg.startswith("-s") and len(arg) > 2:
            ret.append("-s")
            ret.append(f"--hash-length={arg[2:]}")
        else:
            ret.append(arg)
    return ret


class Command:
    """A showref subcommand."""

    def run(self, args: Sequence[str]) -> int | None:
        """Run the command."""
        raise NotImplementedError(self.run)


class cmd_show_ref(Command):
    """List references in a local repository."""

    usage = (
        "showref [-q | --quiet] [--verify] [--head] [-d | --dereference]\n"
        "               [-s | --hash[=<n>]] [--abbrev[=<n>]] [--tags]\n"
        "               [--heads] [--] [<pattern>...]\n"
        "       showref --exclude-existing[=<pattern>]"
    )

    def _make_parser(self) -> argparse.ArgumentParser:
        parser = argparse.ArgumentParser(
            prog="showref", usage=self.usage, add_help=False
        )
        parser.add_argument(
            "--tags",
            action="store_true",
            help="only show tags (can be combined with heads)",
        )
        parser.add_argument(
            "--heads",
            action="store_true",
            help="only show heads (can be combined with tags)",
        )
        parser.add_argument(
            "--verify",
            action="store_true",
            help="stricter reference checking, requires exact ref path",
        )
        parser.add_argument(
            "--head",
            action="store_true",
            help="show the HEAD reference, even if it would be filtered out",
        )
        parser.add_argument(
            "-h", dest="head", action="store_true", help=argparse.SUPPRESS
        )
        parser.add_argument(
            "-d",
            "--dereference",
            action="store_true",
            help="dereference tags into object IDs",
        )
        parser.add_argument(
            "-s",
            "--hash",
            action="store_true",
            help="only show SHA1 hash using <n> digits (--hash=<n>)",
        )
        parser.add_argument(
            "--hash-length",
            dest="abbrev",
            type=parse_abbrev,
            help=argparse.SUPPRESS,
        )
        parser.add_argument(
            "--abbrev",
            dest="abbrev",
            action="store_const",
            const=-1,
            help="use <n> digits to display object names (--abbrev=<n>)",
        )
        parser.add_argument(
            "--abbrev-length",
            dest="abbrev",
            type=parse_abbrev,
            help=argparse.SUPPRESS,
        )
        parser.add_argument(
            "--no-abbrev",
            dest="abbrev",
            action="store_const",
            const=0,
            help="show full object names",
        )
        parser.add_argument(
            "-q",
            "--quiet",
            action="store_true",
            help="do not print results to stdout (useful with --verify)",
        )
        parser.add_argument(
            "--exclude-existing",
            action="store_true",
            help="show refs from stdin that aren't in local repository "
            "(--exclude-existing=<pattern> to filter by prefix)",
        )
        parser.add_argument(
            "--exclude-pattern",
            type=os.fsencode,
            help=argparse.SUPPRESS,
        )
        parser.add_argument(
            "--help",
            action="help",
            help="show this help message and exit",
        )
        parser.add_argument(
            "patterns",
            nargs="*",
            help="patterns to match, or ref names with --verify",
        )
        parser.set_defaults(abbrev=0)
        return parser

    def parse_options(
        self, args: Sequence[str]
    ) -> tuple[porcelain.ShowRefOptions, list[bytes]]:
        """Parse command line arguments.

        Returns: Tuple with the options and the positional arguments
        """
        parser = self._make_parser()
        expanded = _expand_optional_arguments(args)
        # Everything after "--" is a pattern, even if it looks like an option
        trailing: list[str] = []
        if "--" in expanded:
            split = expanded.index("--")
            expanded, trailing = expanded[:split], expanded[split + 1 :]
        # Patterns may appear on either side of the options, as in git
        parsed_args = parser.parse_intermixed_args(expanded)
        options = porcelain.ShowRefOptions(
            hash_only=parsed_args.hash,
            abbrev=parsed_args.abbrev,
            dereference=parsed_args.dereference,
            quiet=parsed_args.quiet,
            show_head=parsed_args.head,
            heads_only=parsed_args.heads,
            tags_only=parsed_args.tags,
            verify=parsed_args.verify,
            exclude_existing=parsed_args.exclude_existing,
            exclude_pattern=parsed_args.exclude_pattern,
        )
        patterns = [*parsed_args.patterns, *trailing]
        return options, [os.fsencode(p) for p in patterns]

    def run(self, args: Sequence[str]) -> int | None:
        """Execute the show-ref command.

        Args:
            args: Command line arguments
        Returns:
            Exit code (0 for success, 1 for no matches, 128 for fatal errors)
        """
        options, patterns = self.parse_options(args)
        outstream = sys.stdout.buffer
        try:
            try:
                with Repo.from_environment() as repo:
                    return porcelain.show_ref(
                        repo,
                        patterns,
                        options,
                        outstream=outstream,
                        instream=sys.stdin.buffer,
                    )
            finally:
                outstream.flush()
        except BrokenPipeError:
            # The reader went away, e.g. "showref | head -1"
            return EXIT_BROKEN_PIPE
        except NotGitRepository:
            logger.error(
                "fatal: not a git repository (or any of the parent directories): .git"
            )
        except UnsupportedVersion as e:
            logger.error("fatal: Expected git repo version <= 1, found %d", e.version)
        except UnsupportedExtension as e:
            logger.error("fatal: unknown repository extension found: %s", e.extension)
        except porcelain.ShowRefError as e:
            logger.error("fatal: %s", e)
        except (FileFormatException, ApplyDeltaError, ValueError, OSError) as e:
            logger.error("fatal: %s", e)
        return EXIT_FATAL


commands = {
    "show-ref": cmd_show_ref,
}


def main(argv: Sequence[str] | None = None) -> int | None:
    """Main entry point for the showref CLI.

    Args:
        argv: Command line arguments (defaults to sys.argv[1:])

    Returns:
        Exit code or None
    """
    if argv is None:
        argv = sys.argv[1:]

    default_logging_config()

    return commands["show-ref"]().run(argv)


def _main() -> None:
    if "SHOWREF_PDB" in os.environ and getattr(signal, "SIGQUIT", None):
        signal.signal(signal.SIGQUIT, signal_quit)  # type: ignore[attr-defined,unused-ignore]
    signal.signal(signal.SIGINT, signal_int)

    ret = main()
    if ret == EXIT_BROKEN_PIPE:
        # Stop the interpreter from flushing into the closed pipe at exit
        devnull = os.open(os.devnull, os.O_WRONLY)
        os.dup2(devnull, sys.stdout.fileno())
    sys.exit(ret)


if __name__ == "__main__":
    _main()
