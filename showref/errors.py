# errors.py -- Exception classes for showref
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

"""Errors raised while reading repository data.

Errors that only make sense for a single module live in that module.
"""


class NotGitRepository(Exception):
    """No repository was found where one was expected."""


class FileFormatException(Exception):
    """A file in the repository does not have the expected format."""


class PackedRefsException(FileFormatException):
    """The packed-refs file is malformed."""


class ObjectFormatException(FileFormatException):
    """An object could not be decoded."""


class ApplyDeltaError(Exception):
    """A delta in a pack file does not apply to its base object."""
