# objects.py -- Object identifiers and object headers
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

"""Object identifiers, object headers and tag parsing.

Only the parts of the object model needed to check for existence and to
peel annotated tags are implemented; object bodies are otherwise treated
as opaque bytes.
"""

__all__ = [
    "HEX_LENGTH",
    "OBJ_BLOB",
    "OBJ_COMMIT",
    "OBJ_TAG",
    "OBJ_TREE",
    "ObjectID",
    "RawObjectID",
    "ZERO_SHA",
    "hex_to_filename",
    "hex_to_sha",
    "object_header",
    "object_id",
    "parse_object_header",
    "parse_tag_target",
    "read_loose_object",
    "sha_to_hex",
    "valid_hexsha",
]

import binascii
import os
import zlib
from hashlib import sha1
from typing import NewType

from .errors import ObjectFormatException

ObjectID = NewType("ObjectID", bytes)
RawObjectID = NewType("RawObjectID", bytes)

HEX_LENGTH = 40
RAW_LENGTH = 20
ZERO_SHA = ObjectID(b"0" * HEX_LENGTH)

OBJ_COMMIT = 1
OBJ_TREE = 2
OBJ_BLOB = 3
OBJ_TAG = 4

TYPE_NAMES = {
    OBJ_COMMIT: b"commit",
    OBJ_TREE: b"tree",
    OBJ_BLOB: b"blob",
    OBJ_TAG: b"tag",
}
TYPE_NUMS = {name: num for (num, name) in TYPE_NAMES.items()}

_OBJECT_HEADER = b"object"
_TYPE_HEADER = b"type"


def sha_to_hex(sha: RawObjectID | bytes) -> ObjectID:
    """Takes a binary sha and returns its hex representation."""
    hexsha = binascii.hexlify(sha)
    if len(hexsha) != HEX_LENGTH:
        raise ValueError(f"Incorrect length of sha string: {hexsha!r}")
    return ObjectID(hexsha)


def hex_to_sha(hex: ObjectID | bytes | str) -> RawObjectID:
    """Takes a hex sha and returns a binary sha."""
    if len(hex) != HEX_LENGTH:
        raise ValueError(f"Incorrect length of hexsha: {hex!r}")
    try:
        return RawObjectID(binascii.unhexlify(hex))
    except binascii.Error as exc:
        raise ValueError(f"Invalid hexsha: {hex!r}") from exc


def valid_hexsha(hex: bytes | str) -> bool:
    """Check whether a string is a full hexadecimal object id."""
    if len(hex) != HEX_LENGTH:
        return False
    try:
        binascii.unhexlify(hex)
    except (TypeError, ValueError):
        return False
    else:
        return True


def hex_to_filename(path: str, hex: ObjectID | bytes) -> str:
    """Takes a hex sha and returns its loose object filename relative to path."""
    hex_str = hex.decode("ascii") if isinstance(hex, bytes) else hex
    return os.path.join(path, hex_str[:2], hex_str[2:])


def object_header(type_num: int, length: int) -> bytes:
    """Return an object header for the given numeric type and text length."""
    return TYPE_NAMES[type_num] + b" " + str(length).encode("ascii") + b"\0"


def object_id(type_num: int, data: bytes) -> ObjectID:
    """Compute the identifier of an object from its type and contents."""
    digest = sha1(object_header(type_num, len(data)) + data).hexdigest()
    return ObjectID(digest.encode("ascii"))


def parse_object_header(text: bytes) -> tuple[int, bytes]:
    """Split a decompressed loose object into its type and contents.

    Args:
      text: The decompressed object, header included
    Returns: Tuple with numeric type and object contents
    Raises:
      ObjectFormatException: if the header is missing or inconsistent
    """
    end = text.find(b"\0")
    if end < 0:
        raise ObjectFormatException("object header is not terminated")
    try:
        type_name, size_text = text[:end].split(b" ", 1)
        size = int(size_text)
    except ValueError as exc:
        raise ObjectFormatException(f"invalid object header {text[:end]!r}") from exc
    try:
        type_num = TYPE_NUMS[type_name]
    except KeyError as exc:
        raise ObjectFormatException(f"unknown object type {type_name!r}") from exc
    contents = text[end + 1 :]
    if len(contents) != size:
        raise ObjectFormatException(
            f"object size mismatch: expected {size}, got {len(contents)}"
        )
    return type_num, contents


def read_loose_object(path: str) -> tuple[int, bytes]:
    """Read and decompress a loose object file."""
    with open(path, "rb") as f:
        compressed = f.read()
    try:
        text = zlib.decompress(compressed)
    except zlib.error as exc:
        raise ObjectFormatException(f"corrupt loose object {path}: {exc}") from exc
    return parse_object_header(text)


def parse_tag_target(text: bytes) -> tuple[int, ObjectID]:
    """Extract the object a tag points at from the tag contents.

    Args:
      text: The body of a tag object (without object header)
    Returns: Tuple with numeric type and id of the tagged object
    Raises:
      ObjectFormatException: if the tag lacks a valid object or type header
    """
    target = None
    target_type = None
    for line in text.split(b"\n"):
        if not line:
            # Headers end at the first blank line
            break
        field, _, value = line.partition(b" ")
        if field == _OBJECT_HEADER:
            target = value
        elif field == _TYPE_HEADER:
            target_type = value
    if target is None or not valid_hexsha(target):
        raise ObjectFormatException(f"tag has no valid object header: {target!r}")
    if target_type not in TYPE_NUMS:
        raise ObjectFormatException(f"tag has unknown type {target_type!r}")
    return TYPE_NUMS[target_type], ObjectID(target)
