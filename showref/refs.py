# refs.py -- For dealing with git refs
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


"""Reading refs.

Refs are read-only here: containers resolve names to object ids and
enumerate the refs under a prefix, but never write.
"""

__all__ = [
    "HEADREF",
    "PEELED_TAG_SUFFIX",
    "SYMREF",
    "DictRefsContainer",
    "DiskRefsContainer",
    "Ref",
    "RefsContainer",
    "SymrefLoop",
    "check_ref_format",
    "is_per_worktree_ref",
    "parse_symref_value",
    "read_packed_refs",
    "read_packed_refs_with_peeled",
]

import os
from collections.abc import Iterator, Mapping
from typing import IO, Callable

from .errors import PackedRefsException
from .log_utils import getLogger
from .objects import HEX_LENGTH, ObjectID, valid_hexsha

logger = getLogger(__name__)

Ref = bytes

HEADREF = b"HEAD"
SYMREF = b"ref: "
LOCAL_BRANCH_PREFIX = b"refs/heads/"
LOCAL_TAG_PREFIX = b"refs/tags/"
PEELED_TAG_SUFFIX = b"^{}"

PACKED_REFS = b"packed-refs"
LOCK_SUFFIX = b".lock"
PACKED_REFS_HEADER = b"# pack-refs with:"

# Characters that may not appear anywhere in a ref name, on top of
# ASCII control characters and DEL
BAD_REF_CHARS = set(b" ~^:?*[\\")

# Symbolic refs are followed at most this many levels deep
MAX_SYMREF_DEPTH = 5

# Refs that every work tree keeps for itself
_PER_WORKTREE_PREFIXES = (b"refs/bisect/", b"refs/worktree/", b"refs/rewritten/")


class SymrefLoop(Exception):
    """Following a symbolic ref did not end in an object id."""

    def __init__(self, ref: bytes, depth: int) -> None:
        super().__init__(ref, depth)
        self.ref = ref
        self.depth = depth


def parse_symref_value(contents: bytes) -> bytes:
    """Return the target of a symbolic ref.

    Raises:
      ValueError: if contents is not a symbolic ref
    """
    if not contents.startswith(SYMREF):
        raise ValueError(contents)
    return contents[len(SYMREF) :].rstrip(b"\r\n")


def _check_ref_component(component: bytes) -> bool:
    if not component or component[:1] == b".":
        return False
    if component.endswith(LOCK_SUFFIX) or b".." in component or b"@{" in component:
        return False
    return not any(c < 0o40 or c == 0o177 or c in BAD_REF_CHARS for c in component)


def check_ref_format(refname: Ref, allow_onelevel: bool = False) -> bool:
    """Check a ref name against the rules of git check-ref-format.

    Args:
      refname: Name to check
      allow_onelevel: Accept names without a slash, such as HEAD
    Returns: Whether refname is well formed
    """
    if refname == b"@" or refname.endswith(b"."):
        return False
    components = refname.split(b"/")
    if len(components) < 2 and not allow_onelevel:
        return False
    return all(_check_ref_component(c) for c in components)


def is_per_worktree_ref(ref: bytes) -> bool:
    """Check whether ref lives in a work tree's own control directory.

    Pseudorefs such as HEAD and the refs under refs/bisect/, refs/worktree/
    and refs/rewritten/ belong to a single work tree; everything else under
    refs/ is shared.
    """
    return not ref.startswith(b"refs/") or ref.startswith(_PER_WORKTREE_PREFIXES)


class RefsContainer:
    """Read access to a repository's refs."""

    def get_packed_refs(self) -> dict[Ref, ObjectID]:
        """Return the refs stored in packed form, empty if there are none."""
        raise NotImplementedError(self.get_packed_refs)

    def get_peeled(self, name: bytes) -> ObjectID | None:
        """Look up the peeled value of a ref without reading objects.

        Returns: The object a tag ref peels to, the ref's own value if it
            is known not to be a tag, or None when nothing is known
        """
        return None

    def allkeys(self) -> set[Ref]:
        """Return the names of all refs, HEAD included."""
        raise NotImplementedError(self.allkeys)

    def read_loose_ref(self, name: bytes) -> bytes | None:
        """Return the raw value of a ref stored outside packed-refs."""
        raise NotImplementedError(self.read_loose_ref)

    def __iter__(self) -> Iterator[Ref]:
        return iter(self.allkeys())

    def keys(self, base: bytes | None = None) -> set[bytes]:
        """Return the names of the refs starting with base."""
        if base is None:
            return self.allkeys()
        return {ref for ref in self.allkeys() if ref.startswith(base)}

    def read_ref(self, refname: bytes) -> bytes | None:
        """Return the raw value of a ref, a hex id or "ref: <target>".

        A loose ref shadows a packed one of the same name.
        """
        contents = self.read_loose_ref(refname)
        if contents:
            return contents
        return self.get_packed_refs().get(refname)

    def follow(self, name: bytes) -> tuple[list[bytes], bytes | None]:
        """Follow symbolic refs starting at name.

        Returns: The names visited, name first, and the value the chain
            ends in; None if the last name does not exist
        Raises:
          SymrefLoop: if the chain is longer than MAX_SYMREF_DEPTH
        """
        chain = [name]
        contents = self.read_ref(name)
        while contents and contents.startswith(SYMREF):
            if len(chain) > MAX_SYMREF_DEPTH:
                raise SymrefLoop(name, len(chain))
            target = parse_symref_value(contents)
            chain.append(target)
            contents = self.read_ref(target)
        return chain, contents

    def resolve(self, name: bytes) -> ObjectID | None:
        """Resolve a ref name exactly, following symbolic refs.

        Unlike __getitem__, this never raises: a missing ref, a dangling or
        looping symbolic ref, an unsafe name and a ref with corrupt contents
        all yield None.
        """
        if not check_ref_format(name, allow_onelevel=True):
            return None
        try:
            _, sha = self.follow(name)
        except SymrefLoop:
            logger.debug("symref loop resolving %r", name)
            return None
        if sha is None or not valid_hexsha(sha):
            return None
        return ObjectID(sha)

    def iterrefs(self, base: bytes = b"refs/") -> Iterator[tuple[Ref, ObjectID]]:
        """Iterate over the refs under base with their resolved object ids.

        Refs are produced in ascending byte order of their full name. Refs
        that can not be resolved are skipped with a warning. HEAD is never
        included.

        Args:
          base: Prefix of the refs to include, ending in a slash
        Returns: Iterator over (refname, sha) tuples
        """
        for name in sorted(self.keys(base)):
            if name == HEADREF:
                continue
            sha = self.resolve(name)
            if sha is None:
                logger.warning("warning: ignoring broken ref %s", os.fsdecode(name))
                continue
            yield name, sha

    def __contains__(self, refname: bytes) -> bool:
        return bool(self.read_ref(refname))

    def __getitem__(self, name: bytes) -> ObjectID:
        _, sha = self.follow(name)
        if sha is None:
            raise KeyError(name)
        return ObjectID(sha)


class DictRefsContainer(RefsContainer):
    """Refs held in a dictionary, with an optional peeled cache."""

    def __init__(
        self,
        refs: Mapping[bytes, bytes],
        peeled: Mapping[bytes, bytes] | None = None,
    ) -> None:
        self._refs = dict(refs)
        self._peeled = dict(peeled or {})

    def allkeys(self) -> set[bytes]:
        return set(self._refs)

    def read_loose_ref(self, name: bytes) -> bytes | None:
        return self._refs.get(name)

    def get_packed_refs(self) -> dict[bytes, ObjectID]:
        return {}

    def get_peeled(self, name: bytes) -> ObjectID | None:
        peeled = self._peeled.get(name)
        return None if peeled is None else ObjectID(peeled)


class DiskRefsContainer(RefsContainer):
    """Loose and packed refs of a repository on disk.

    Shared refs are read from path, the common directory. Per-worktree
    refs are read from worktree_path, which defaults to path.
    """

    def __init__(
        self,
        path: str | bytes | os.PathLike[str],
        worktree_path: str | bytes | os.PathLike[str] | None = None,
    ) -> None:
        self.path = os.fsencode(os.fspath(path))
        self.worktree_path = (
            self.path
            if worktree_path is None
            else os.fsencode(os.fspath(worktree_path))
        )
        # Filled in together by the first call to get_packed_refs()
        self._packed_refs: dict[bytes, ObjectID] | None = None
        self._peeled_refs: dict[bytes, ObjectID] = {}
        self._peeled_header = False
        self._fully_peeled = False

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.path!r})"

    def refpath(self, name: bytes) -> bytes:
        """Return the path of the file a loose ref is stored in."""
        root = self.worktree_path if is_per_worktree_ref(name) else self.path
        return os.path.join(root, name.replace(b"/", os.fsencode(os.path.sep)))

    def _walk_loose_refs(
        self,
        root: bytes,
        base: bytes,
        include_dir: Callable[[bytes], bool] | None = None,
    ) -> Iterator[bytes]:
        top = os.path.join(root, base.rstrip(b"/"))
        skip = len(os.path.join(root, b""))
        sep = os.fsencode(os.path.sep)
        for dirpath, dirnames, filenames in os.walk(top):
            prefix = dirpath[skip:].replace(sep, b"/")
            if include_dir is not None:
                dirnames[:] = [
                    d for d in dirnames if include_dir(prefix + b"/" + d + b"/")
                ]
            for filename in filenames:
                if filename.endswith(LOCK_SUFFIX):
                    # Another process is updating this ref
                    continue
                refname = prefix + b"/" + filename
                if not check_ref_format(refname):
                    logger.warning(
                        "warning: ignoring ref with broken name %s",
                        os.fsdecode(refname),
                    )
                    continue
                yield refname

    def _loose_refs(self, base: bytes = b"refs/") -> Iterator[bytes]:
        base = base.rstrip(b"/") + b"/"
        if base != b"refs/":
            root = self.worktree_path if is_per_worktree_ref(base) else self.path
            yield from self._walk_loose_refs(root, base)
        elif self.worktree_path == self.path:
            yield from self._walk_loose_refs(self.path, base)
        else:
            yield from self._walk_loose_refs(
                self.path, base, lambda d: not is_per_worktree_ref(d)
            )
            yield from self._walk_loose_refs(
                self.worktree_path, base, is_per_worktree_ref
            )

    def keys(self, base: bytes | None = None) -> set[bytes]:
        if base is None:
            return self.allkeys()
        names = {ref for ref in self._loose_refs(base) if ref.startswith(base)}
        names.update(ref for ref in self.get_packed_refs() if ref.startswith(base))
        return names

    def allkeys(self) -> set[bytes]:
        names = set(self._loose_refs())
        names.update(self.get_packed_refs())
        if os.path.exists(self.refpath(HEADREF)):
            names.add(HEADREF)
        return names

    def get_packed_refs(self) -> dict[bytes, ObjectID]:
        if self._packed_refs is not None:
            return self._packed_refs
        self._packed_refs = {}
        try:
            f = open(os.path.join(self.path, PACKED_REFS), "rb")
        except FileNotFoundError:
            return self._packed_refs
        with f:
            header = f.readline().rstrip()
            traits = (
                header[len(PACKED_REFS_HEADER) :].split()
                if header.startswith(PACKED_REFS_HEADER)
                else []
            )
            if b"peeled" in traits:
                self._peeled_header = True
                self._fully_peeled = b"fully-peeled" in traits
                for sha, name, peeled in read_packed_refs_with_peeled(f):
                    self._packed_refs[name] = sha
                    if peeled is not None:
                        self._peeled_refs[name] = peeled
            else:
                f.seek(0)
                for sha, name in read_packed_refs(f):
                    self._packed_refs[name] = sha
        logger.debug("read %d packed refs", len(self._packed_refs))
        return self._packed_refs

    def get_peeled(self, name: bytes) -> ObjectID | None:
        packed = self.get_packed_refs()
        if name not in packed or self.read_loose_ref(name) is not None:
            # Only packed refs have cached peeled values
            return None
        if name in self._peeled_refs:
            return self._peeled_refs[name]
        if self._fully_peeled or (
            self._peeled_header and name.startswith(LOCAL_TAG_PREFIX)
        ):
            # Known not to point at a tag
            return packed[name]
        return None

    def read_loose_ref(self, name: bytes) -> bytes | None:
        """Read the file of a loose ref.

        Only the first line is read. A hex id may be followed by whitespace
        and other text; anything else after it is kept so that the value
        fails validation.

        Returns: The ref's value, or None if the file can not be read
        """
        try:
            with open(self.refpath(name), "rb") as f:
                line = f.readline()
            if line[HEX_LENGTH : HEX_LENGTH + 1].isspace() and not line.startswith(
                SYMREF
            ):
                return line[:HEX_LENGTH]
            return line.rstrip(b"\r\n")
        except (OSError, UnicodeError):
            # Missing files, directories and names the OS rejects
            return None


def _parse_ref_line(line: bytes) -> tuple[ObjectID, bytes]:
    parts = line.rstrip(b"\r\n").split(b" ")
    if len(parts) != 2:
        raise PackedRefsException(f"invalid ref line {line!r}")
    sha, name = parts
    if not valid_hexsha(sha):
        raise PackedRefsException(f"Invalid hex sha {sha!r}")
    if not check_ref_format(name):
        raise PackedRefsException(f"invalid ref name {name!r}")
    return ObjectID(sha), name


def read_packed_refs(f: IO[bytes]) -> Iterator[tuple[ObjectID, bytes]]:
    """Parse a packed-refs file that has no peeled lines.

    Returns: Iterator over (sha, refname) tuples
    Raises:
      PackedRefsException: on malformed lines, including peeled lines
    """
    for line in f:
        if line.startswith(b"#"):
            continue
        if line.startswith(b"^"):
            raise PackedRefsException("peeled line in packed-refs without peeled trait")
        yield _parse_ref_line(line)


def read_packed_refs_with_peeled(
    f: IO[bytes],
) -> Iterator[tuple[ObjectID, bytes, ObjectID | None]]:
    """Parse the body of a packed-refs file with peeled lines.

    The header line must already have been consumed. A "^<sha>" line
    gives the peeled value of the ref on the line before it.

    Returns: Iterator over (sha, refname, peeled sha or None) tuples
    Raises:
      PackedRefsException: on malformed lines
    """
    pending: tuple[ObjectID, bytes] | None = None
    for line in f:
        if line.startswith(b"#"):
            continue
        line = line.rstrip(b"\r\n")
        if line.startswith(b"^"):
            if pending is None:
                raise PackedRefsException("peeled line without a ref")
            peeled = line[1:]
            if not valid_hexsha(peeled):
                raise PackedRefsException(f"Invalid hex sha {peeled!r}")
            yield pending[0], pending[1], ObjectID(peeled)
            pending = None
            continue
        if pending is not None:
            yield pending[0], pending[1], None
        pending = _parse_ref_line(line)
    if pending is not None:
        yield pending[0], pending[1], None
