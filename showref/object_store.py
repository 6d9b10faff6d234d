# object_store.py -- Object store for git objects
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

"""Git object store interfaces and implementation."""

__all__ = [
    "DEFAULT_ABBREV_LENGTH",
    "MINIMUM_ABBREV_LENGTH",
    "BaseObjectStore",
    "DiskObjectStore",
    "MemoryObjectStore",
    "peel_sha",
]

import binascii
import os
from collections.abc import Iterator

from .errors import NotGitRepository
from .log_utils import getLogger
from .objects import (
    HEX_LENGTH,
    OBJ_TAG,
    ObjectID,
    RawObjectID,
    hex_to_filename,
    hex_to_sha,
    object_id,
    parse_tag_target,
    read_loose_object,
    sha_to_hex,
    valid_hexsha,
)
from .pack import Pack

logger = getLogger(__name__)

INFODIR = "info"
PACKDIR = "pack"

MINIMUM_ABBREV_LENGTH = 4
DEFAULT_ABBREV_LENGTH = 7


def _common_prefix_length(a: bytes, b: bytes) -> int:
    n = 0
    for x, y in zip(a, b):
        if x != y:
            break
        n += 1
    return n


class BaseObjectStore:
    """Object store interface."""

    def __contains__(self, sha: ObjectID) -> bool:
        """Check if a particular object is present by SHA1."""
        raise NotImplementedError(self.__contains__)

    def get_raw(self, sha: ObjectID) -> tuple[int, bytes]:
        """Obtain the raw contents for an object.

        Args:
          sha: SHA1 of the object (hex)
        Returns: tuple with numeric type and object contents
        Raises:
          KeyError: if the object is not present
        """
        raise NotImplementedError(self.get_raw)

    def __iter__(self) -> Iterator[ObjectID]:
        """Iterate over the SHAs that are present in this store."""
        raise NotImplementedError(self.__iter__)

    def iter_prefix(self, prefix: bytes) -> Iterator[ObjectID]:
        """Iterate over all SHA1s that start with a given hex prefix.

        The default implementation is a naive iteration over all objects.
        """
        for sha in self:
            if sha.startswith(prefix):
                yield sha

    def count_objects(self) -> int:
        """Return the (approximate) number of objects in the store."""
        return sum(1 for _ in self)

    def close(self) -> None:
        """Close any files opened by this object store."""

    def default_abbrev_length(self) -> int:
        """Return the abbreviation length used when none is configured.

        This scales with the size of the store: each doubling of the
        number of objects adds half a hex digit.
        """
        count = self.count_objects()
        length = (count.bit_length() + 1) // 2
        return max(DEFAULT_ABBREV_LENGTH, length)

    def find_unique_abbrev(self, sha: ObjectID, min_length: int) -> ObjectID:
        """Return the shortest prefix of sha that identifies it unambiguously.

        Args:
          sha: Hex SHA1 to abbreviate
          min_length: Requested number of digits. 0 disables abbreviation,
            a negative value selects default_abbrev_length().
        Returns: Hex prefix with at least min_length digits
        """
        if min_length == 0 or min_length >= HEX_LENGTH:
            return sha
        if min_length < 0:
            min_length = self.default_abbrev_length()
        length = max(min_length, MINIMUM_ABBREV_LENGTH)
        for other in self.iter_prefix(sha[:length]):
            if other == sha:
                continue
            length = max(length, _common_prefix_length(sha, other) + 1)
        return ObjectID(sha[: min(length, HEX_LENGTH)])


class MemoryObjectStore(BaseObjectStore):
    """Object store that keeps all objects in memory."""

    def __init__(self) -> None:
        self._data: dict[ObjectID, tuple[int, bytes]] = {}

    def __contains__(self, sha: ObjectID) -> bool:
        return sha in self._data

    def __iter__(self) -> Iterator[ObjectID]:
        return iter(list(self._data))

    def __len__(self) -> int:
        return len(self._data)

    def get_raw(self, sha: ObjectID) -> tuple[int, bytes]:
        return self._data[sha]

    def add_object(
        self, type_num: int, data: bytes, sha: ObjectID | None = None
    ) -> ObjectID:
        """Add a single object to this object store.

        Args:
          type_num: Numeric object type
          data: Object contents
          sha: Identifier to store the object under; computed from the
            contents when omitted
        Returns: The object's identifier
        """
        if sha is None:
            sha = object_id(type_num, data)
        self._data[sha] = (type_num, data)
        return sha


class DiskObjectStore(BaseObjectStore):
    """Git-style object store that exists on disk.

    Objects are looked up as loose objects first, then in the packs in
    objects/pack, then in any alternate object stores listed in
    objects/info/alternates.
    """

    def __init__(self, path: str) -> None:
        """Open an object store.

        Args:
          path: Path of the object store (usually .git/objects)
        """
        self.path = path
        self.pack_dir = os.path.join(self.path, PACKDIR)
        self._packs: list[Pack] | None = None
        self._alternates: list["DiskObjectStore"] | None = None

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}({self.path!r})>"

    def _read_alternate_paths(self) -> Iterator[str]:
        try:
            f = open(os.path.join(self.path, INFODIR, "alternates"), "rb")
        except FileNotFoundError:
            return
        with f:
            for line in f.readlines():
                line = line.rstrip(b"\n")
                if line.startswith(b"#") or not line:
                    continue
                path = os.fsdecode(line)
                if os.path.isabs(path):
                    yield path
                else:
                    yield os.path.join(self.path, path)

    @property
    def alternates(self) -> list["DiskObjectStore"]:
        if self._alternates is not None:
            return self._alternates
        self._alternates = []
        seen = {os.path.realpath(self.path)}
        for path in self._read_alternate_paths():
            real = os.path.realpath(path)
            if real in seen:
                continue
            seen.add(real)
            if not os.path.isdir(path):
                logger.warning("warning: unable to find alternate object store %s", path)
                continue
            self._alternates.append(DiskObjectStore(path))
        return self._alternates

    @property
    def packs(self) -> list[Pack]:
        """List with pack objects."""
        if self._packs is None:
            self._packs = self._load_packs()
        return self._packs

    def _load_packs(self) -> list[Pack]:
        try:
            names = sorted(os.listdir(self.pack_dir))
        except FileNotFoundError:
            return []
        packs = []
        for name in names:
            if not (name.startswith("pack-") and name.endswith(".idx")):
                continue
            basename = os.path.join(self.pack_dir, name[: -len(".idx")])
            if not os.path.exists(basename + ".pack"):
                logger.debug("skipping index without pack data: %s", name)
                continue
            packs.append(Pack(basename, resolve_ext_ref=self._resolve_ext_ref))
        logger.debug("loaded %d packs from %s", len(packs), self.pack_dir)
        return packs

    def _resolve_ext_ref(self, sha: RawObjectID) -> tuple[int, bytes]:
        return self.get_raw(sha_to_hex(sha))

    def _get_loose_path(self, sha: ObjectID) -> str:
        return hex_to_filename(self.path, sha)

    def _iter_loose_objects(self) -> Iterator[ObjectID]:
        try:
            base_names = os.listdir(self.path)
        except FileNotFoundError:
            return
        for base in base_names:
            if len(base) != 2:
                continue
            try:
                rests = os.listdir(os.path.join(self.path, base))
            except NotADirectoryError:
                continue
            for rest in rests:
                sha = os.fsencode(base + rest)
                if valid_hexsha(sha):
                    yield ObjectID(sha)

    def _iter_loose_prefix(self, prefix: bytes) -> Iterator[ObjectID]:
        if len(prefix) < 2:
            yield from (sha for sha in self._iter_loose_objects() if sha.startswith(prefix))
            return
        dir = os.path.join(self.path, os.fsdecode(prefix[:2]))
        try:
            names = os.listdir(dir)
        except FileNotFoundError:
            return
        for name in names:
            sha = prefix[:2] + os.fsencode(name)
            if sha.startswith(prefix) and valid_hexsha(sha):
                yield ObjectID(sha)

    def contains_loose(self, sha: ObjectID) -> bool:
        return os.path.exists(self._get_loose_path(sha))

    def contains_packed(self, sha: ObjectID) -> bool:
        return any(sha in pack for pack in self.packs)

    def __contains__(self, sha: ObjectID) -> bool:
        if not valid_hexsha(sha):
            return False
        if self.contains_loose(sha) or self.contains_packed(sha):
            return True
        return any(sha in alternate for alternate in self.alternates)

    def iter_prefix(self, prefix: bytes) -> Iterator[ObjectID]:
        seen: set[ObjectID] = set()
        # Packs are searched on the even-length binary part of the prefix
        binary_prefix = binascii.unhexlify(prefix[: len(prefix) - len(prefix) % 2])
        candidates: list[Iterator[ObjectID]] = [self._iter_loose_prefix(prefix)]
        for pack in self.packs:
            candidates.append(
                sha_to_hex(raw) for raw in pack.iter_prefix(binary_prefix)
            )
        for alternate in self.alternates:
            candidates.append(alternate.iter_prefix(prefix))
        for iterator in candidates:
            for sha in iterator:
                if sha.startswith(prefix) and sha not in seen:
                    seen.add(sha)
                    yield sha

    def count_objects(self) -> int:
        count = sum(1 for _ in self._iter_loose_objects())
        count += sum(len(pack) for pack in self.packs)
        count += sum(alternate.count_objects() for alternate in self.alternates)
        return count

    def get_raw(self, sha: ObjectID) -> tuple[int, bytes]:
        if not valid_hexsha(sha):
            raise KeyError(sha)
        try:
            return read_loose_object(self._get_loose_path(sha))
        except FileNotFoundError:
            pass
        raw = hex_to_sha(sha)
        for pack in self.packs:
            try:
                return pack.get_raw(raw)
            except KeyError:
                pass
        for alternate in self.alternates:
            try:
                return alternate.get_raw(sha)
            except KeyError:
                pass
        raise KeyError(sha)

    def close(self) -> None:
        if self._packs is not None:
            for pack in self._packs:
                pack.close()
            self._packs = None
        if self._alternates is not None:
            for alternate in self._alternates:
                alternate.close()
            self._alternates = None

    @classmethod
    def from_repository_path(cls, controldir: str) -> "DiskObjectStore":
        path = os.path.join(controldir, "objects")
        if not os.path.isdir(path):
            raise NotGitRepository(f"No objects directory in {controldir}")
        return cls(path)


def peel_sha(store: BaseObjectStore, sha: ObjectID) -> ObjectID | None:
    """Peel all tags from a SHA.

    Args:
      store: Object store to read tag objects from
      sha: The object SHA to peel.
    Returns: The SHA of the first non-tag object the tag chain points at,
        or None if sha is not a tag or a link of the chain is missing.
    """
    try:
        type_num, data = store.get_raw(sha)
    except KeyError:
        return None
    if type_num != OBJ_TAG:
        return None
    seen = {sha}
    while type_num == OBJ_TAG:
        _, sha = parse_tag_target(data)
        if sha in seen:
            logger.debug("tag cycle detected at %s", sha.decode("ascii"))
            return None
        seen.add(sha)
        try:
            type_num, data = store.get_raw(sha)
        except KeyError:
            return None
    return sha
