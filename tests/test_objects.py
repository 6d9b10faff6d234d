# test_objects.py -- Tests for showref.objects
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

"""Tests for showref.objects."""

import os
import shutil
import tempfile
import zlib

from showref.errors import ObjectFormatException
from showref.objects import (
    OBJ_BLOB,
    OBJ_COMMIT,
    OBJ_TAG,
    OBJ_TREE,
    hex_to_filename,
    hex_to_sha,
    object_header,
    object_id,
    parse_object_header,
    parse_tag_target,
    read_loose_object,
    sha_to_hex,
    valid_hexsha,
)

from . import TestCase
from .utils import make_tag_body

EMPTY_BLOB = b"e69de29bb2d1d6434b8b29ae775ad8c2e48c5391"
EMPTY_TREE = b"4b825dc642cb6eb9a060e54bf8d69288fbee4904"


class HexTests(TestCase):
    def test_roundtrip(self) -> None:
        raw = hex_to_sha(EMPTY_BLOB)
        self.assertEqual(20, len(raw))
        self.assertEqual(EMPTY_BLOB, sha_to_hex(raw))

    def test_hex_to_sha_invalid(self) -> None:
        self.assertRaises(ValueError, hex_to_sha, b"z" * 40)
        self.assertRaises(ValueError, hex_to_sha, b"abcd")

    def test_sha_to_hex_wrong_length(self) -> None:
        self.assertRaises(ValueError, sha_to_hex, b"\x00" * 19)

    def test_valid_hexsha(self) -> None:
        self.assertTrue(valid_hexsha(EMPTY_BLOB))
        self.assertTrue(valid_hexsha(EMPTY_BLOB.decode("ascii")))
        self.assertFalse(valid_hexsha(b"e69de29"))
        self.assertFalse(valid_hexsha(b"g" * 40))
        self.assertFalse(valid_hexsha(b"ref: refs/heads/main" + b" " * 20))

    def test_hex_to_filename(self) -> None:
        self.assertEqual(
            os.path.join("objects", "e6", "9de29bb2d1d6434b8b29ae775ad8c2e48c5391"),
            hex_to_filename("objects", EMPTY_BLOB),
        )


class ObjectIdTests(TestCase):
    def test_header(self) -> None:
        self.assertEqual(b"blob 5\0", object_header(OBJ_BLOB, 5))
        self.assertEqual(b"tag 0\0", object_header(OBJ_TAG, 0))

    def test_known_ids(self) -> None:
        self.assertEqual(EMPTY_BLOB, object_id(OBJ_BLOB, b""))
        self.assertEqual(EMPTY_TREE, object_id(OBJ_TREE, b""))
        self.assertEqual(
            b"9daeafb9864cf43055ae93beb0afd6c7d144bfa4", object_id(OBJ_BLOB, b"test\n")
        )


class ParseObjectHeaderTests(TestCase):
    def test_parse(self) -> None:
        self.assertEqual((OBJ_BLOB, b"test\n"), parse_object_header(b"blob 5\0test\n"))

    def test_unterminated(self) -> None:
        self.assertRaises(ObjectFormatException, parse_object_header, b"blob 5")

    def test_unknown_type(self) -> None:
        self.assertRaises(ObjectFormatException, parse_object_header, b"bogus 1\0x")

    def test_bad_size(self) -> None:
        self.assertRaises(ObjectFormatException, parse_object_header, b"blob x\0")
        self.assertRaises(ObjectFormatException, parse_object_header, b"blob 3\0ab")


class ReadLooseObjectTests(TestCase):
    def setUp(self) -> None:
        super().setUp()
        self.tempdir = tempfile.mkdtemp()
        self.addCleanup(shutil.rmtree, self.tempdir)
        self.path = os.path.join(self.tempdir, "obj")

    def test_read(self) -> None:
        with open(self.path, "wb") as f:
            f.write(zlib.compress(b"commit 3\0abc"))
        self.assertEqual((OBJ_COMMIT, b"abc"), read_loose_object(self.path))

    def test_corrupt(self) -> None:
        with open(self.path, "wb") as f:
            f.write(b"not zlib data")
        self.assertRaises(ObjectFormatException, read_loose_object, self.path)

    def test_missing(self) -> None:
        self.assertRaises(FileNotFoundError, read_loose_object, self.path)


class ParseTagTargetTests(TestCase):
    def test_commit_target(self) -> None:
        body = make_tag_body(EMPTY_BLOB, OBJ_BLOB)
        self.assertEqual((OBJ_BLOB, EMPTY_BLOB), parse_tag_target(body))

    def test_ignores_message(self) -> None:
        body = (
            b"object " + EMPTY_TREE + b"\ntype tree\ntag t\n\n"
            b"object " + EMPTY_BLOB + b"\n"
        )
        self.assertEqual((OBJ_TREE, EMPTY_TREE), parse_tag_target(body))

    def test_missing_object(self) -> None:
        self.assertRaises(
            ObjectFormatException, parse_tag_target, b"type commit\ntag t\n\n"
        )

    def test_invalid_object(self) -> None:
        self.assertRaises(
            ObjectFormatException,
            parse_tag_target,
            b"object 1234\ntype commit\n",
        )

    def test_unknown_type(self) -> None:
        self.assertRaises(
            ObjectFormatException,
            parse_tag_target,
            b"object " + EMPTY_BLOB + b"\ntype bogus\n",
        )
