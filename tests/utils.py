# utils.py -- Test utilities for showref
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

"""Utility functions common to showref tests."""

import binascii
import os
import struct
import zlib
from hashlib import sha1

from showref.objects import (
    OBJ_COMMIT,
    TYPE_NAMES,
    ObjectID,
    hex_to_filename,
    object_header,
    object_id,
)
from showref.pack import OFS_DELTA, REF_DELTA

# Plain old SHAs that do not correspond to any object
F_SHA = ObjectID(b"f" * 40)


def init_repo(path: str, bare: bool = False, config: bytes | None = None) -> str:
    """Create the skeleton of a git repository.

    Args:
      path: Directory to create the repository in
      bare: Whether to create a bare repository
      config: Contents of the repository config file
    Returns: Path of the control directory
    """
    controldir = path if bare else os.path.join(path, ".git")
    for subdir in ("objects/info", "objects/pack", "refs/heads", "refs/tags"):
        os.makedirs(os.path.join(controldir, subdir), exist_ok=True)
    with open(os.path.join(controldir, "HEAD"), "wb") as f:
        f.write(b"ref: refs/heads/main\n")
    if config is None:
        config = b"[core]\n\trepositoryformatversion = 0\n"
    with open(os.path.join(controldir, "config"), "wb") as f:
        f.write(config)
    return controldir


def write_loose_object(objects_dir: str, type_num: int, data: bytes) -> ObjectID:
    """Write a loose object and return its id."""
    sha = object_id(type_num, data)
    path = hex_to_filename(objects_dir, sha)
    os.makedirs(os.path.dirname(path), exist_ok=True)
    with open(path, "wb") as f:
        f.write(zlib.compress(object_header(type_num, len(data)) + data))
    return sha


def write_ref(controldir: str, name: bytes, contents: bytes) -> None:
    """Write a loose ref; contents is a hex sha or "ref: <target>"."""
    path = os.path.join(controldir, os.fsdecode(name))
    os.makedirs(os.path.dirname(path), exist_ok=True)
    with open(path, "wb") as f:
        f.write(contents + b"\n")


def write_packed_refs(
    controldir: str,
    refs: dict[bytes, bytes],
    peeled: dict[bytes, bytes] | None = None,
) -> None:
    """Write a packed-refs file, with a peeled header if peeled is given."""
    lines = []
    if peeled is not None:
        lines.append(b"# pack-refs with: peeled fully-peeled sorted \n")
    for name in sorted(refs):
        lines.append(refs[name] + b" " + name + b"\n")
        if peeled is not None and name in peeled:
            lines.append(b"^" + peeled[name] + b"\n")
    with open(os.path.join(controldir, "packed-refs"), "wb") as f:
        f.writelines(lines)


def make_commit_body(message: bytes = b"commit\n") -> bytes:
    """Return the body of a commit object; only uniqueness matters here."""
    return (
        b"tree 4b825dc642cb6eb9a060e54bf8d69288fbee4904\n"
        b"author Test <test@example.com> 1700000000 +0000\n"
        b"committer Test <test@example.com> 1700000000 +0000\n"
        b"\n" + message
    )


def make_tag_body(
    target: bytes, target_type: int = OBJ_COMMIT, name: bytes = b"v1.0"
) -> bytes:
    """Return the body of an annotated tag object pointing at target."""
    return (
        b"object " + target + b"\n"
        b"type " + TYPE_NAMES[target_type] + b"\n"
        b"tag " + name + b"\n"
        b"tagger Test <test@example.com> 1700000000 +0000\n"
        b"\n"
        b"Release " + name + b"\n"
    )


def _encode_size(size: int) -> bytes:
    ret = bytearray()
    c = size & 0x7F
    size >>= 7
    while size:
        ret.append(c | 0x80)
        c = size & 0x7F
        size >>= 7
    ret.append(c)
    return bytes(ret)


def create_delta(base: bytes, target: bytes) -> bytes:
    """Create a delta that copies the shared prefix and inserts the rest."""
    out = bytearray(_encode_size(len(base)) + _encode_size(len(target)))
    common = 0
    while common < min(len(base), len(target)) and base[common] == target[common]:
        common += 1
    if common:
        cmd = 0x80
        size_bytes = bytearray()
        for i in range(3):
            byte = (common >> (i * 8)) & 0xFF
            if byte:
                cmd |= 1 << (4 + i)
                size_bytes.append(byte)
        out.append(cmd)
        out.extend(size_bytes)
    rest = target[common:]
    while rest:
        chunk, rest = rest[:127], rest[127:]
        out.append(len(chunk))
        out.extend(chunk)
    return bytes(out)


def _pack_object_header(type_num: int, size: int) -> bytes:
    ret = bytearray()
    c = (type_num << 4) | (size & 0x0F)
    size >>= 4
    while size:
        ret.append(c | 0x80)
        c = size & 0x7F
        size >>= 7
    ret.append(c)
    return bytes(ret)


def _encode_ofs(offset: int) -> bytes:
    ret = bytearray([offset & 0x7F])
    offset >>= 7
    while offset:
        offset -= 1
        ret.insert(0, 0x80 | (offset & 0x7F))
        offset >>= 7
    return bytes(ret)


def build_pack(
    pack_dir: str,
    objects: list[tuple[int, bytes]],
    deltas: dict[int, int | tuple[bytes, bytes]] | None = None,
    index_version: int = 2,
) -> list[ObjectID]:
    """Write a pack file and its index.

    Args:
      pack_dir: Directory to write pack-<sha>.pack and .idx to
      objects: (type_num, data) tuples of the objects to store
      deltas: Maps the position of an object in objects to either the
        position of an earlier object (stored as OFS_DELTA) or a
        (hex sha, data) tuple of an object outside the pack (REF_DELTA)
      index_version: Version of the index file to write (1 or 2)
    Returns: The ids of the objects, in the order given
    """
    deltas = deltas or {}
    data = bytearray(b"PACK" + struct.pack(">LL", 2, len(objects)))
    shas = []
    offsets = []
    crcs = []
    for i, (type_num, body) in enumerate(objects):
        offset = len(data)
        base = deltas.get(i)
        if base is None:
            entry = _pack_object_header(type_num, len(body)) + zlib.compress(body)
        elif isinstance(base, int):
            delta = create_delta(objects[base][1], body)
            entry = (
                _pack_object_header(OFS_DELTA, len(delta))
                + _encode_ofs(offset - offsets[base])
                + zlib.compress(delta)
            )
        else:
            base_sha, base_body = base
            delta = create_delta(base_body, body)
            entry = (
                _pack_object_header(REF_DELTA, len(delta))
                + binascii.unhexlify(base_sha)
                + zlib.compress(delta)
            )
        data.extend(entry)
        offsets.append(offset)
        crcs.append(zlib.crc32(entry) & 0xFFFFFFFF)
        shas.append(object_id(type_num, body))
    pack_checksum = sha1(data).digest()
    data.extend(pack_checksum)

    entries = sorted(
        zip((binascii.unhexlify(sha) for sha in shas), offsets, crcs)
    )
    fan_out = [0] * 256
    for raw, _, _ in entries:
        fan_out[raw[0]] += 1
    for i in range(1, 256):
        fan_out[i] += fan_out[i - 1]

    if index_version == 1:
        idx = bytearray(struct.pack(">256L", *fan_out))
        for raw, offset, _ in entries:
            idx.extend(struct.pack(">L", offset) + raw)
    else:
        idx = bytearray(b"\377tOc" + struct.pack(">L", 2))
        idx.extend(struct.pack(">256L", *fan_out))
        for raw, _, _ in entries:
            idx.extend(raw)
        for _, _, crc in entries:
            idx.extend(struct.pack(">L", crc))
        for _, offset, _ in entries:
            idx.extend(struct.pack(">L", offset))
    idx.extend(pack_checksum)
    idx.extend(sha1(idx).digest())

    basename = os.path.join(pack_dir, "pack-" + pack_checksum.hex())
    with open(basename + ".pack", "wb") as f:
        f.write(data)
    with open(basename + ".idx", "wb") as f:
        f.write(idx)
    return shas
