# porcelain.py -- Porcelain-like layer on top of showref
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

"""Simple wrapper that provides porcelain-like functions on top of showref.

Currently implemented:
 * exclude_existing
 * show_ref
 * show_refs
 * verify_refs

These functions are meant to behave similarly to the git subcommands.
Differences in behaviour are considered bugs.

Functions should generally accept both unicode strings and bytestrings
"""

__all__ = [
    "BadRefError",
    "CandidateAction",
    "CandidateResult",
    "Error",
    "InvalidRefError",
    "Mode",
    "ShowRefError",
    "ShowRefOptions",
    "UsageError",
    "classify_candidate",
    "exclude_existing",
    "format_ref",
    "iter_matching_refs",
    "open_repo_closing",
    "ref_matches",
    "select_mode",
    "show_ref",
    "show_refs",
    "verify_refs",
]

import enum
import os
import sys
from collections.abc import Iterable, Iterator, Sequence
from contextlib import AbstractContextManager, closing, contextmanager
from dataclasses import dataclass
from typing import BinaryIO, Optional, TypeVar, Union, cast, overload

if sys.version_info >= (3, 12):
    from collections.abc import Buffer
    from typing import override
else:
    from typing_extensions import Buffer, override

from .config import get_abbrev
from .log_utils import getLogger
from .object_store import peel_sha
from .objects import ObjectID
from .refs import (
    HEADREF,
    LOCAL_BRANCH_PREFIX,
    LOCAL_TAG_PREFIX,
    PEELED_TAG_SUFFIX,
    Ref,
    check_ref_format,
)
from .repo import BaseRepo, Repo

logger = getLogger(__name__)

T = TypeVar("T", bound=BaseRepo)

# Characters C's isspace() accepts
_WHITESPACE = b" \t\n\v\f\r"


class NoneStream:
    """Fallback if stdout or stderr are unavailable, does nothing."""

    def read(self, size: int = -1) -> None:
        return None

    def readall(self) -> bytes:
        return b""

    def __iter__(self) -> Iterator[bytes]:
        return iter(())

    @override
    def readinto(self, b: Buffer) -> Optional[int]:
        return 0

    @override
    def write(self, b: Buffer) -> Optional[int]:
        return len(b) if b else 0  # type: ignore[arg-type]

    def flush(self) -> None:
        pass


default_bytes_out_stream: BinaryIO = cast(
    BinaryIO, getattr(sys.stdout, "buffer", None) or NoneStream()
)
default_bytes_in_stream: BinaryIO = cast(
    BinaryIO, getattr(sys.stdin, "buffer", None) or NoneStream()
)


class Error(Exception):
    """Porcelain-based error."""

    def __init__(self, msg: str) -> None:
        super().__init__(msg)


class ShowRefError(Error):
    """An error that aborts the whole show-ref invocation."""


class BadRefError(ShowRefError):
    """A ref points at an object that is missing from the object store."""

    def __init__(self, refname: bytes, sha: bytes) -> None:
        self.refname = refname
        self.sha = sha
        super().__init__(
            f"bad ref {os.fsdecode(refname)} ({sha.decode('ascii', 'replace')})"
        )


class InvalidRefError(ShowRefError):
    """A name passed for verification is not a valid, existing ref."""

    def __init__(self, refname: bytes) -> None:
        self.refname = refname
        super().__init__(f"'{os.fsdecode(refname)}' - not a valid ref")


class UsageError(ShowRefError):
    """The requested operation was invoked incorrectly."""


@dataclass(frozen=True)
class ShowRefOptions:
    """Options controlling a single show-ref invocation.

    Attributes:
      hash_only: Only print object ids, not ref names
      abbrev: Number of hex digits to show. 0 shows full ids, a negative
        value asks for the configured (or automatic) default length.
      dereference: Also print the peeled object id of tags
      quiet: Do not print anything
      show_head: Include HEAD regardless of patterns
      heads_only: Only enumerate refs under refs/heads/
      tags_only: Only enumerate refs under refs/tags/
      verify: Resolve the given names exactly instead of matching patterns
      exclude_existing: Filter ref lines read from input against local refs
      exclude_pattern: Prefix that ref names must have in exclude mode
    """

    hash_only: bool = False
    abbrev: int = 0
    dereference: bool = False
    quiet: bool = False
    show_head: bool = False
    heads_only: bool = False
    tags_only: bool = False
    verify: bool = False
    exclude_existing: bool = False
    exclude_pattern: bytes | None = None


class Mode(enum.Enum):
    """The mutually exclusive modes of operation."""

    EXCLUDE_EXISTING = "exclude-existing"
    VERIFY = "verify"
    PATTERNS = "patterns"


def select_mode(options: ShowRefOptions) -> Mode:
    """Pick the mode of operation; exclude-existing wins over verify."""
    if options.exclude_existing:
        return Mode.EXCLUDE_EXISTING
    if options.verify:
        return Mode.VERIFY
    return Mode.PATTERNS


class CandidateAction(enum.Enum):
    """What to do with one line of exclude-existing input."""

    EMIT = "emit"
    SKIP = "skip"
    WARN = "warn"


@dataclass(frozen=True)
class CandidateResult:
    """Outcome of classifying one line of exclude-existing input.

    Attributes:
      action: Whether to emit, silently skip or warn about the line
      line: The input line without its line terminator
      refname: The ref name extracted from the line
    """

    action: CandidateAction
    line: bytes
    refname: bytes


@overload
def open_repo_closing(path_or_repo: T) -> AbstractContextManager[T]: ...


@overload
def open_repo_closing(
    path_or_repo: Union[str, bytes, os.PathLike[str]],
) -> AbstractContextManager[Repo]: ...


def open_repo_closing(
    path_or_repo: Union[str, bytes, os.PathLike[str], T],
) -> AbstractContextManager[Union[T, Repo]]:
    """Open an argument that can be a repository or a path for a repository.

    returns a context manager that will close the repo on exit if the argument
    is a path, else does nothing if the argument is a repo.
    """
    if isinstance(path_or_repo, BaseRepo):
        return _noop_context_manager(path_or_repo)
    return closing(Repo(path_or_repo))


@contextmanager
def _noop_context_manager(obj: T) -> Iterator[T]:
    """Context manager that has the same api as closing but does nothing."""
    yield obj


def _to_bytes(value: str | bytes) -> bytes:
    return os.fsencode(value) if isinstance(value, str) else value


def ref_matches(
    refname: Ref, patterns: Sequence[bytes], include_head: bool = False
) -> bool:
    """Check whether a ref should be reported for a list of patterns.

    A pattern matches when it is a suffix of the ref name that either is
    the whole name or starts right after a '/', so "main" matches
    "refs/heads/main" but not "refs/heads/domain".

    Args:
      refname: Full name of the ref
      patterns: Patterns to match against; no patterns matches everything
      include_head: Match HEAD regardless of the patterns
    Returns: True if the ref matches
    """
    if include_head and refname == HEADREF:
        return True
    if not patterns:
        return True
    for pattern in patterns:
        if len(pattern) > len(refname) or not refname.endswith(pattern):
            continue
        if len(pattern) == len(refname):
            return True
        if refname[-len(pattern) - 1 : -len(pattern)] == b"/":
            return True
    return False


def _effective_abbrev(repo: BaseRepo, options: ShowRefOptions) -> int:
    if options.abbrev >= 0:
        return options.abbrev
    configured = get_abbrev(repo.get_config_stack())
    if configured is None:
        return -1
    return configured


def _peel(repo: BaseRepo, refname: Ref, sha: ObjectID) -> ObjectID | None:
    peeled = repo.refs.get_peeled(refname)
    if peeled is not None:
        # A cached peeled value equal to the ref itself means "not a tag"
        return None if peeled == sha else peeled
    return peel_sha(repo.object_store, sha)


def format_ref(
    repo: BaseRepo,
    refname: Ref,
    sha: ObjectID,
    options: ShowRefOptions,
    abbrev: int | None = None,
) -> list[bytes]:
    """Format the output lines for a single ref.

    Args:
      repo: Repository the ref lives in
      refname: Full name of the ref
      sha: Object id the ref resolves to
      options: Output options
      abbrev: Abbreviation length to use instead of options.abbrev
    Returns: Output lines, without line terminators; empty when quiet
    Raises:
      BadRefError: if the object sha is missing from the object store
    """
    store = repo.object_store
    if sha not in store:
        raise BadRefError(refname, sha)
    if options.quiet:
        return []
    if abbrev is None:
        abbrev = _effective_abbrev(repo, options)
    hex = store.find_unique_abbrev(sha, abbrev)
    if options.hash_only:
        lines = [hex]
    else:
        lines = [hex + b" " + refname]
    if options.dereference:
        peeled = _peel(repo, refname, sha)
        if peeled is not None:
            lines.append(
                store.find_unique_abbrev(peeled, abbrev)
                + b" "
                + refname
                + PEELED_TAG_SUFFIX
            )
    return lines


def iter_matching_refs(
    repo: BaseRepo, patterns: Sequence[bytes], options: ShowRefOptions
) -> Iterator[tuple[Ref, ObjectID]]:
    """Iterate over the refs that pattern mode reports, in output order.

    HEAD comes first when requested, followed by the branches and then the
    tags when the enumeration is scoped, or by every ref under refs/.
    """
    if options.show_head:
        head = repo.refs.resolve(HEADREF)
        if head is not None:
            yield HEADREF, head
    if options.heads_only or options.tags_only:
        bases = []
        if options.heads_only:
            bases.append(LOCAL_BRANCH_PREFIX)
        if options.tags_only:
            bases.append(LOCAL_TAG_PREFIX)
    else:
        bases = [b"refs/"]
    for base in bases:
        for refname, sha in repo.refs.iterrefs(base):
            if ref_matches(refname, patterns, options.show_head):
                yield refname, sha


def _write_lines(outstream: BinaryIO, lines: Iterable[bytes]) -> None:
    for line in lines:
        outstream.write(line + b"\n")


def show_refs(
    repo: BaseRepo,
    patterns: Sequence[bytes],
    options: ShowRefOptions,
    outstream: BinaryIO = default_bytes_out_stream,
) -> int:
    """Print the refs matching patterns.

    Returns: Number of refs that matched
    Raises:
      BadRefError: if a matching ref points at a missing object
    """
    abbrev = _effective_abbrev(repo, options) if not options.quiet else 0
    found = 0
    for refname, sha in iter_matching_refs(repo, patterns, options):
        found += 1
        _write_lines(outstream, format_ref(repo, refname, sha, options, abbrev))
    logger.debug("%d refs matched", found)
    return found


def verify_refs(
    repo: BaseRepo,
    refnames: Sequence[bytes],
    options: ShowRefOptions,
    outstream: BinaryIO = default_bytes_out_stream,
) -> bool:
    """Resolve and print each of refnames exactly.

    Only HEAD and names under refs/ are accepted. In quiet mode the first
    name that does not resolve ends verification without an error.

    Returns: True if every name was verified
    Raises:
      UsageError: if refnames is empty
      InvalidRefError: if a name does not resolve and quiet is not set
      BadRefError: if a ref points at a missing object
    """
    if not refnames:
        raise UsageError("--verify requires a reference")
    abbrev = _effective_abbrev(repo, options) if not options.quiet else 0
    for refname in refnames:
        sha = None
        if refname.startswith(b"refs/") or refname == HEADREF:
            sha = repo.refs.resolve(refname)
        if sha is None:
            if not options.quiet:
                raise InvalidRefError(refname)
            return False
        _write_lines(outstream, format_ref(repo, refname, sha, options, abbrev))
    return True


def classify_candidate(
    line: bytes, existing: frozenset[bytes] | set[bytes], pattern: bytes | None = None
) -> CandidateResult:
    """Decide what to do with one line of exclude-existing input.

    Lines look like "<anything> <refname>" or "<refname>", optionally
    followed by "^{}". The ref name is the last whitespace separated word
    once the "^{}" marker is removed.

    Args:
      line: The input line; one trailing newline is stripped
      existing: Names of the refs that exist locally
      pattern: Prefix the ref name must have for the line to be considered
    Returns: A CandidateResult; lines to emit carry the line as read,
        "^{}" included
    """
    if line.endswith(b"\n"):
        line = line[:-1]
    body = line
    if body.endswith(PEELED_TAG_SUFFIX):
        body = body[: -len(PEELED_TAG_SUFFIX)]
    start = len(body)
    while start > 0 and body[start - 1] not in _WHITESPACE:
        start -= 1
    refname = body[start:]
    if pattern is not None and not refname.startswith(pattern):
        return CandidateResult(CandidateAction.SKIP, line, refname)
    if not check_ref_format(refname):
        return CandidateResult(CandidateAction.WARN, line, refname)
    if refname in existing:
        return CandidateResult(CandidateAction.SKIP, line, refname)
    return CandidateResult(CandidateAction.EMIT, line, refname)


def exclude_existing(
    repo: BaseRepo,
    pattern: bytes | None = None,
    instream: BinaryIO = default_bytes_in_stream,
    outstream: BinaryIO = default_bytes_out_stream,
) -> None:
    """Print the ref lines from instream that name refs missing locally.

    Malformed ref names are reported as warnings and skipped; the whole
    input is always processed.

    Args:
      repo: Repository with the local refs
      pattern: Only consider ref names starting with this prefix
      instream: Stream of candidate ref lines
      outstream: Stream to write the lines to keep to
    """
    existing = frozenset(refname for refname, _ in repo.refs.iterrefs())
    logger.debug("%d existing refs", len(existing))
    for line in instream:
        result = classify_candidate(line, existing, pattern)
        if result.action is CandidateAction.EMIT:
            outstream.write(result.line + b"\n")
        elif result.action is CandidateAction.WARN:
            logger.warning(
                "warning: ref '%s' ignored", os.fsdecode(result.refname)
            )


def show_ref(
    repo: Union[BaseRepo, str, os.PathLike[str]] = ".",
    patterns: Optional[Sequence[Union[str, bytes]]] = None,
    options: Optional[ShowRefOptions] = None,
    outstream: BinaryIO = default_bytes_out_stream,
    instream: BinaryIO = default_bytes_in_stream,
) -> int:
    """List, verify or filter references in a local repository.

    Args:
      repo: Path to the repository, or a repository object
      patterns: Patterns to match in pattern mode, or ref names to check
        in verify mode
      options: Options for this invocation
      outstream: Stream to write output to
      instream: Stream to read candidate refs from in exclude-existing mode
    Returns: Exit status: 0 on success, 1 if nothing matched or a ref
        could not be verified in quiet mode
    Raises:
      ShowRefError: on errors that abort the invocation
    """
    if options is None:
        options = ShowRefOptions()
    byte_patterns = [_to_bytes(p) for p in (patterns or [])]
    mode = select_mode(options)
    logger.debug("show-ref running in %s mode", mode.value)

    with open_repo_closing(repo) as r:
        if mode is Mode.EXCLUDE_EXISTING:
            exclude_existing(r, options.exclude_pattern, instream, outstream)
            return 0
        if mode is Mode.VERIFY:
            return 0 if verify_refs(r, byte_patterns, options, outstream) else 1
        return 0 if show_refs(r, byte_patterns, options, outstream) else 1
