# pack.py -- Reading git pack index and pack data files
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

"""Read-only access to git pack files and their indexes.

A pack stores many objects in one file, most of them compressed and
many of them expressed as deltas against another object. Each ``.pack``
file has a matching ``.idx`` file mapping object names to offsets in the
pack, so a lookup consults the index first and then seeks in the data.

Deltas are resolved lazily, only when the contents of an object are
actually requested.
"""

__all__ = [
    "DELTA_TYPES",
    "OFS_DELTA",
    "REF_DELTA",
    "Pack",
    "PackData",
    "PackIndex",
    "PackIndex1",
    "PackIndex2",
    "apply_delta",
    "bisect_find_sha",
    "load_pack_index",
    "load_pack_index_file",
    "read_pack_header",
    "take_msb_bytes",
    "unpack_object",
]

import mmap
import os
import struct
import zlib
from collections.abc import Callable, Iterator
from typing import IO, Any

from .errors import ApplyDeltaError, FileFormatException
from .objects import (
    RAW_LENGTH,
    ObjectID,
    RawObjectID,
    hex_to_sha,
    sha_to_hex,
)

OFS_DELTA = 6
REF_DELTA = 7

DELTA_TYPES = frozenset([OFS_DELTA, REF_DELTA])

PACK_SIGNATURE = b"PACK"
PACK_INDEX_SIGNATURE = b"\377tOc"
SUPPORTED_PACK_VERSIONS = (2, 3)

FANOUT_ENTRIES = 256
FANOUT_SIZE = FANOUT_ENTRIES * 4
# v1 entries are a 4 byte offset followed by the binary name
V1_ENTRY_SIZE = 4 + RAW_LENGTH
LARGE_OFFSET_FLAG = 0x80000000

_ZLIB_BUFSIZE = 65536

# Looks up the base of a REF_DELTA entry that is not stored in this pack
ExternalRefResolver = Callable[[RawObjectID], tuple[int, bytes]]

PackEntry = tuple[int, int | bytes | None, bytes]


def take_msb_bytes(read: Callable[[int], bytes]) -> list[int]:
    """Read a run of bytes up to and including the first without bit 7 set."""
    collected: list[int] = []
    more = True
    while more:
        chunk = read(1)
        if not chunk:
            raise FileFormatException("unexpected end of pack data")
        collected.append(chunk[0])
        more = bool(chunk[0] & 0x80)
    return collected


def _map_file(f: IO[bytes]) -> tuple[Any, int]:
    """Return the contents of f and their length.

    Regular files are mapped into memory; anything that cannot be mapped
    is read in full.
    """
    try:
        fileno = f.fileno()
    except (OSError, AttributeError):
        fileno = None
    if fileno is not None:
        length = os.fstat(fileno).st_size
        if length:
            try:
                return mmap.mmap(fileno, length, access=mmap.ACCESS_READ), length
            except (OSError, ValueError):
                pass
    data = f.read()
    return data, len(data)


def bisect_find_sha(
    start: int, end: int, sha: bytes, unpack_name: Callable[[int], bytes]
) -> int | None:
    """Binary search for sha among the sorted names in [start, end].

    Args:
      start: First index to consider
      end: Last index to consider (inclusive)
      sha: Binary name to look for
      unpack_name: Returns the binary name stored at an index
    Returns: The matching index, or None
    """
    lo, hi = start, end
    while lo <= hi:
        mid = (lo + hi) // 2
        candidate = unpack_name(mid)
        if candidate == sha:
            return mid
        if candidate < sha:
            lo = mid + 1
        else:
            hi = mid - 1
    return None


class PackIndex:
    """Maps binary object names to offsets in a pack file.

    Every index begins with a 256 entry fan-out table; entry N counts the
    objects whose first name byte is at most N. Names are kept in sorted
    order, so the table reduces every lookup to a short bisection.
    """

    version: int
    _fan_out_table: list[int]

    def __init__(self, filename: str, file: IO[bytes]) -> None:
        self._filename = filename
        self._file = file
        self._contents, self._size = _map_file(file)

    @property
    def path(self) -> str:
        return self._filename

    def __repr__(self) -> str:
        return f"<{type(self).__name__} for {self._filename!r}>"

    def close(self) -> None:
        self._file.close()
        if isinstance(self._contents, mmap.mmap):
            self._contents.close()

    def __len__(self) -> int:
        return self._fan_out_table[FANOUT_ENTRIES - 1]

    def __iter__(self) -> Iterator[ObjectID]:
        """Yield the hex name of every object, in index order."""
        for position in range(len(self)):
            yield sha_to_hex(self._unpack_name(position))

    def __contains__(self, sha: ObjectID | RawObjectID) -> bool:
        try:
            self.object_offset(sha)
        except KeyError:
            return False
        return True

    def _unpack_name(self, i: int) -> bytes:
        raise NotImplementedError(type(self).__name__ + "._unpack_name")

    def _unpack_offset(self, i: int) -> int:
        raise NotImplementedError(type(self).__name__ + "._unpack_offset")

    def _load_fan_out(self, at: int) -> list[int]:
        if self._size < at + FANOUT_SIZE:
            raise FileFormatException(f"pack index {self._filename} is truncated")
        return list(struct.unpack_from(f">{FANOUT_ENTRIES}L", self._contents, at))

    def _bucket(self, first_byte: int) -> tuple[int, int]:
        """Return the half-open range of positions starting with first_byte."""
        lower = self._fan_out_table[first_byte - 1] if first_byte else 0
        return lower, self._fan_out_table[first_byte]

    def object_offset(self, sha: ObjectID | RawObjectID) -> int:
        """Look up where an object starts in the pack.

        Accepts either a hex or a binary object name.

        Raises:
          KeyError: the object is not in this index
        """
        raw = sha if len(sha) == RAW_LENGTH else hex_to_sha(sha)
        lower, upper = self._bucket(raw[0])
        position = bisect_find_sha(lower, upper - 1, raw, self._unpack_name)
        if position is None:
            raise KeyError(sha)
        return self._unpack_offset(position)

    def iter_prefix(self, prefix: bytes) -> Iterator[RawObjectID]:
        """Yield the binary names that begin with a binary prefix."""
        if prefix:
            positions = range(*self._bucket(prefix[0]))
        else:
            positions = range(len(self))
        for position in positions:
            name = self._unpack_name(position)
            if name[: len(prefix)] == prefix:
                yield RawObjectID(name)


class PackIndex1(PackIndex):
    """The original index layout, with interleaved offsets and names."""

    def __init__(self, filename: str, file: IO[bytes]) -> None:
        super().__init__(filename, file)
        self.version = 1
        self._fan_out_table = self._load_fan_out(0)

    def _entry_start(self, i: int) -> int:
        return FANOUT_SIZE + i * V1_ENTRY_SIZE

    def _unpack_name(self, i: int) -> bytes:
        at = self._entry_start(i) + 4
        return bytes(self._contents[at : at + RAW_LENGTH])

    def _unpack_offset(self, i: int) -> int:
        (value,) = struct.unpack_from(">L", self._contents, self._entry_start(i))
        return int(value)


class PackIndex2(PackIndex):
    """The current index layout, with separate name, CRC and offset tables."""

    def __init__(self, filename: str, file: IO[bytes]) -> None:
        super().__init__(filename, file)
        if self._contents[:4] != PACK_INDEX_SIGNATURE:
            raise FileFormatException(f"{filename} is not a version 2 pack index")
        (self.version,) = struct.unpack_from(">L", self._contents, 4)
        if self.version != 2:
            raise FileFormatException(
                f"expected pack index version 2, found {self.version}"
            )
        self._fan_out_table = self._load_fan_out(8)
        count = len(self)
        self._names_at = 8 + FANOUT_SIZE
        crcs_at = self._names_at + count * RAW_LENGTH
        self._offsets_at = crcs_at + count * 4
        self._large_offsets_at = self._offsets_at + count * 4

    def _unpack_name(self, i: int) -> bytes:
        at = self._names_at + i * RAW_LENGTH
        return bytes(self._contents[at : at + RAW_LENGTH])

    def _unpack_offset(self, i: int) -> int:
        (small,) = struct.unpack_from(">L", self._contents, self._offsets_at + i * 4)
        if not small & LARGE_OFFSET_FLAG:
            return int(small)
        slot = small & ~LARGE_OFFSET_FLAG
        (large,) = struct.unpack_from(
            ">Q", self._contents, self._large_offsets_at + slot * 8
        )
        return int(large)


def load_pack_index_file(path: str, f: IO[bytes]) -> PackIndex:
    """Create the right PackIndex subclass for an open index file.

    Args:
      path: Name to report the index under
      f: Binary file positioned anywhere; it is rewound first
    """
    f.seek(0)
    magic = f.read(8)
    f.seek(0)
    if magic[:4] != PACK_INDEX_SIGNATURE:
        return PackIndex1(path, f)
    (version,) = struct.unpack(">L", magic[4:8])
    if version != 2:
        raise FileFormatException(f"unsupported pack index version {version}")
    return PackIndex2(path, f)


def load_pack_index(path: str) -> PackIndex:
    f = open(path, "rb")
    try:
        return load_pack_index_file(path, f)
    except BaseException:
        f.close()
        raise


def read_pack_header(read: Callable[[int], bytes]) -> tuple[int, int]:
    """Parse the 12 byte header at the start of a pack.

    Returns: Tuple with the pack version and the number of objects
    """
    header = read(12)
    if len(header) != 12:
        raise FileFormatException("pack is shorter than its header")
    signature, version, count = struct.unpack(">4sLL", header)
    if signature != PACK_SIGNATURE:
        raise FileFormatException(f"bad pack signature {signature!r}")
    if version not in SUPPORTED_PACK_VERSIONS:
        raise FileFormatException(f"unsupported pack version {version}")
    return version, count


def _inflate(read_some: Callable[[int], bytes], expected: int) -> bytes:
    """Decompress exactly one zlib stream that should yield expected bytes."""
    inflater = zlib.decompressobj()
    pieces = []
    while not inflater.eof:
        compressed = read_some(_ZLIB_BUFSIZE)
        if not compressed:
            raise FileFormatException("pack data ends inside a zlib stream")
        try:
            pieces.append(inflater.decompress(compressed))
        except zlib.error as exc:
            raise FileFormatException(f"corrupt zlib stream: {exc}") from exc
    data = b"".join(pieces)
    if len(data) != expected:
        raise FileFormatException(
            f"inflated {len(data)} bytes where {expected} were expected"
        )
    return data


def _decode_entry_header(header: list[int]) -> tuple[int, int]:
    """Split a pack entry header into its type number and inflated size."""
    type_num = (header[0] >> 4) & 0x07
    size = header[0] & 0x0F
    shift = 4
    for byte in header[1:]:
        size |= (byte & 0x7F) << shift
        shift += 7
    return type_num, size


def _decode_base_offset(encoded: list[int]) -> int:
    # Every continuation byte adds one before shifting, so encodings are
    # never ambiguous.
    offset = encoded[0] & 0x7F
    for byte in encoded[1:]:
        offset = ((offset + 1) << 7) | (byte & 0x7F)
    return offset


def unpack_object(
    read_all: Callable[[int], bytes],
    read_some: Callable[[int], bytes] | None = None,
) -> PackEntry:
    """Read one entry from a pack stream.

    Args:
      read_all: Returns exactly the number of bytes asked for
      read_some: Returns at least one byte and possibly fewer than asked
        for; defaults to read_all
    Returns: Tuple of (type_num, delta_base, data). For OFS_DELTA entries
      delta_base is the distance back to the base entry, for REF_DELTA
      entries it is the binary name of the base, otherwise None. data is
      the inflated object body or delta.
    """
    type_num, size = _decode_entry_header(take_msb_bytes(read_all))
    delta_base: int | bytes | None = None
    if type_num == OFS_DELTA:
        delta_base = _decode_base_offset(take_msb_bytes(read_all))
    elif type_num == REF_DELTA:
        delta_base = read_all(RAW_LENGTH)
        if len(delta_base) != RAW_LENGTH:
            raise FileFormatException("unexpected end of pack data")
    return type_num, delta_base, _inflate(read_some or read_all, size)


def _read_varint(buf: bytes, pos: int) -> tuple[int, int]:
    value = 0
    shift = 0
    while pos < len(buf):
        byte = buf[pos]
        pos += 1
        value |= (byte & 0x7F) << shift
        shift += 7
        if byte < 0x80:
            break
    return value, pos


def _read_copy_args(delta: bytes, pos: int, op: int) -> tuple[int, int, int]:
    """Decode the sparse offset and length that follow a copy opcode."""
    offset = 0
    for bit in range(4):
        if op & (1 << bit):
            offset |= delta[pos] << (8 * bit)
            pos += 1
    length = 0
    for bit in range(3):
        if op & (0x10 << bit):
            length |= delta[pos] << (8 * bit)
            pos += 1
    return offset, length or 0x10000, pos


def apply_delta(src_buf: bytes, delta: bytes) -> bytes:
    """Rebuild an object from its base and a git binary delta.

    Raises:
      ApplyDeltaError: the delta does not fit the base or is malformed
    """
    src_size, pos = _read_varint(delta, 0)
    dest_size, pos = _read_varint(delta, pos)
    if src_size != len(src_buf):
        raise ApplyDeltaError(
            f"delta expects a {src_size} byte base, got {len(src_buf)} bytes"
        )
    pieces = []
    end = len(delta)
    while pos < end:
        op = delta[pos]
        pos += 1
        if op & 0x80:
            offset, length, pos = _read_copy_args(delta, pos, op)
            if offset + length > src_size or length > dest_size:
                break
            pieces.append(src_buf[offset : offset + length])
        elif op:
            pieces.append(delta[pos : pos + op])
            pos += op
        else:
            raise ApplyDeltaError("delta contains reserved opcode 0")
    if pos != end:
        raise ApplyDeltaError(f"{end - pos} trailing bytes after delta")
    result = b"".join(pieces)
    if len(result) != dest_size:
        raise ApplyDeltaError(
            f"delta produced {len(result)} bytes, expected {dest_size}"
        )
    return result


class PackData:
    """Random access to the entries of a ``.pack`` file.

    Each entry starts with a variable length header: bits 4-6 of the first
    byte give the type and the remaining low bits, continued through later
    bytes, give the inflated size.
    """

    def __init__(self, filename: str, file: IO[bytes] | None = None) -> None:
        self._filename = filename
        self._file = open(filename, "rb") if file is None else file
        try:
            self.version, self._num_objects = read_pack_header(self._file.read)
        except BaseException:
            self._file.close()
            raise
        self._header_size = 12

    @property
    def filename(self) -> str:
        return os.path.basename(self._filename)

    def close(self) -> None:
        self._file.close()

    def __len__(self) -> int:
        return self._num_objects

    def get_object_at(self, offset: int) -> PackEntry:
        """Decode the entry that starts at offset, as unpack_object does."""
        if offset < self._header_size:
            raise FileFormatException(f"invalid pack offset {offset}")
        self._file.seek(offset)
        return unpack_object(self._file.read)


class Pack:
    """A ``.pack`` file paired with its ``.idx``, both opened on demand."""

    def __init__(
        self,
        basename: str,
        resolve_ext_ref: ExternalRefResolver | None = None,
    ) -> None:
        self._basename = basename
        self._data: PackData | None = None
        self._idx: PackIndex | None = None
        self.resolve_ext_ref = resolve_ext_ref

    def __repr__(self) -> str:
        return f"<Pack {self._basename!r}>"

    @property
    def index(self) -> PackIndex:
        if self._idx is None:
            self._idx = load_pack_index(self._basename + ".idx")
        return self._idx

    @property
    def data(self) -> PackData:
        if self._data is None:
            self._data = PackData(self._basename + ".pack")
        return self._data

    def close(self) -> None:
        data, idx = self._data, self._idx
        self._data = self._idx = None
        if data is not None:
            data.close()
        if idx is not None:
            idx.close()

    def __len__(self) -> int:
        return len(self.index)

    def __iter__(self) -> Iterator[ObjectID]:
        return iter(self.index)

    def __contains__(self, sha: ObjectID | RawObjectID) -> bool:
        return sha in self.index

    def iter_prefix(self, prefix: bytes) -> Iterator[RawObjectID]:
        return self.index.iter_prefix(prefix)

    def _lookup_base(self, sha: RawObjectID) -> tuple[int, bytes]:
        try:
            offset = self.index.object_offset(sha)
        except KeyError:
            if self.resolve_ext_ref is None:
                raise
            return self.resolve_ext_ref(sha)
        return self._resolve_at(offset)

    def _resolve_at(self, offset: int) -> tuple[int, bytes]:
        # Follow the chain down to a full object, then replay the deltas
        # from the base upwards.
        pending: list[bytes] = []
        type_num, base, data = self.data.get_object_at(offset)
        while type_num in DELTA_TYPES:
            pending.append(data)
            if type_num == OFS_DELTA:
                assert isinstance(base, int)
                offset -= base
                type_num, base, data = self.data.get_object_at(offset)
            else:
                assert isinstance(base, bytes)
                type_num, data = self._lookup_base(RawObjectID(base))
        while pending:
            data = apply_delta(data, pending.pop())
        return type_num, data

    def get_raw(self, sha: ObjectID | RawObjectID) -> tuple[int, bytes]:
        """Return the type number and full contents of an object.

        Raises:
          KeyError: the object is not in this pack
        """
        return self._resolve_at(self.index.object_offset(sha))
