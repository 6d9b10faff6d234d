# config.py - Reading Git config files
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


"""Reading Git configuration files.

Only reading is supported. Include directives are not followed.
"""

__all__ = [
    "Config",
    "ConfigDict",
    "ConfigFile",
    "StackedConfig",
    "get_abbrev",
    "get_xdg_config_home_path",
    "parse_boolean",
]

import logging
import os
from collections.abc import Iterator
from typing import IO, overload

from .objects import HEX_LENGTH

logger = logging.getLogger(__name__)

Section = tuple[bytes, ...]
SectionLike = bytes | str | tuple[bytes | str, ...]
Name = bytes
NameLike = bytes | str
Value = bytes

MINIMUM_ABBREV = 4

UTF8_BOM = b"\xef\xbb\xbf"

_BACKSLASH = ord(b"\\")
_QUOTE = ord(b'"')
_ESCAPE_TABLE = {
    _BACKSLASH: _BACKSLASH,
    _QUOTE: _QUOTE,
    ord(b"n"): ord(b"\n"),
    ord(b"t"): ord(b"\t"),
    ord(b"b"): ord(b"\b"),
}
_COMMENT_CHARS = frozenset(b"#;")
_BLANK_CHARS = frozenset(b" \t")

_TRUE_VALUES = (b"true", b"yes", b"on", b"1")
_FALSE_VALUES = (b"false", b"no", b"off", b"0", b"")


def parse_boolean(value: bytes) -> bool | None:
    """Interpret a config value as a git boolean.

    Returns: True or False, or None if value is not a boolean string
    """
    value = value.lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    return None


class Config:
    """Read access to configuration settings."""

    def get(self, section: SectionLike, name: NameLike) -> Value:
        """Look up a setting.

        Args:
          section: Section name, or a tuple of section and subsection
          name: Variable name
        Raises:
          KeyError: if the setting is absent
        """
        raise NotImplementedError(self.get)

    @overload
    def get_boolean(
        self, section: SectionLike, name: NameLike, default: bool
    ) -> bool: ...

    @overload
    def get_boolean(self, section: SectionLike, name: NameLike) -> bool | None: ...

    def get_boolean(
        self, section: SectionLike, name: NameLike, default: bool | None = None
    ) -> bool | None:
        """Look up a boolean setting, returning default when it is absent.

        Raises:
          ValueError: if the setting is not a boolean
        """
        try:
            value = self.get(section, name)
        except KeyError:
            return default
        ret = parse_boolean(value)
        if ret is None:
            raise ValueError(f"not a valid boolean string: {value!r}")
        return ret


def _normalize_key(section: SectionLike, name: NameLike) -> tuple[Section, Name]:
    parts = section if isinstance(section, tuple) else (section,)
    encoded = [p if isinstance(p, bytes) else p.encode("utf-8") for p in parts]
    if not isinstance(name, bytes):
        name = name.encode("utf-8")
    # Section and variable names are case-insensitive, subsections are not
    return (encoded[0].lower(), *encoded[1:]), name.lower()


class ConfigDict(Config):
    """Settings held in a dictionary keyed by section."""

    def __init__(self, values: dict[Section, dict[Name, Value]] | None = None) -> None:
        self._values: dict[Section, dict[Name, Value]] = {}
        for section, settings in (values or {}).items():
            for name, value in settings.items():
                self.set(section, name, value)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self._values!r})"

    def __eq__(self, other: object) -> bool:
        return isinstance(other, type(self)) and self._values == other._values

    def sections(self) -> Iterator[Section]:
        return iter(self._values)

    def items(self, section: SectionLike) -> Iterator[tuple[Name, Value]]:
        """Iterate over the (name, value) pairs set in section."""
        key, _ = _normalize_key(section, b"")
        return iter(self._values.get(key, {}).items())

    def get(self, section: SectionLike, name: NameLike) -> Value:
        key, name = _normalize_key(section, name)
        settings = self._values.get(key, {})
        if name in settings:
            return settings[name]
        # A subsection falls back to its parent section
        return self._values[key[:1]][name]

    def set(self, section: SectionLike, name: NameLike, value: Value | str) -> None:
        key, name = _normalize_key(section, name)
        if not isinstance(value, bytes):
            value = value.encode("utf-8")
        self._values.setdefault(key, {})[name] = value


def _parse_string(value: bytes) -> bytes:
    """Decode a raw config value: quotes, escapes and trailing comments."""
    data = value.strip()
    out = bytearray()
    blanks = bytearray()
    quoted = False
    i = 0
    while i < len(data):
        c = data[i]
        i += 1
        if c == _BACKSLASH:
            if i == len(data):
                raise ValueError("escape at end of value")
            try:
                c = _ESCAPE_TABLE[data[i]]
            except KeyError as exc:
                raise ValueError(
                    f"escape character {chr(data[i])!r} not allowed"
                ) from exc
            i += 1
        elif c == _QUOTE:
            quoted = not quoted
            continue
        elif not quoted and c in _COMMENT_CHARS:
            break
        elif not quoted and c in _BLANK_CHARS:
            # Kept only if more of the value follows
            blanks.append(c)
            continue
        out += blanks
        blanks.clear()
        out.append(c)
    if quoted:
        raise ValueError("missing end quote")
    return bytes(out)


def _check_variable_name(name: bytes) -> bool:
    return name[:1].isalpha() and name.replace(b"-", b"").isalnum()


def _check_section_name(name: bytes) -> bool:
    return name.replace(b"-", b"").replace(b".", b"").isalnum()


def _strip_comments(line: bytes) -> bytes:
    quoted = False
    for i, c in enumerate(line):
        if c == _QUOTE:
            quoted = not quoted
        elif c in _COMMENT_CHARS and not quoted:
            return line[:i]
    return line


def _continues(value: bytes) -> bool:
    """Check whether value ends in a backslash that escapes the newline."""
    body = value.rstrip(b"\r\n")
    if body == value:
        return False
    backslashes = len(body) - len(body.rstrip(b"\\"))
    return backslashes % 2 == 1


def _parse_section_header(line: bytes) -> tuple[Section, bytes]:
    """Parse a "[section]" header.

    Returns: The section and whatever follows the closing bracket
    """
    line = _strip_comments(line).rstrip()
    quoted = False
    escaped = False
    for end in range(1, len(line)):
        c = line[end]
        if escaped:
            escaped = False
        elif c == _BACKSLASH:
            escaped = True
        elif c == _QUOTE:
            quoted = not quoted
        elif c == ord(b"]") and not quoted:
            break
    else:
        raise ValueError("expected trailing ]")
    header, rest = line[1:end], line[end + 1 :]
    name, sep, subsection = header.partition(b" ")
    if not _check_section_name(name):
        raise ValueError(f"invalid section name {name!r}")
    if sep:
        if len(subsection) < 2 or subsection[:1] != b'"' or subsection[-1:] != b'"':
            raise ValueError(f"Invalid subsection {subsection!r}")
        unescaped = subsection[1:-1].replace(b'\\"', b'"').replace(b"\\\\", b"\\")
        return (name, unescaped), rest
    if b"." in name:
        # The deprecated [section.subsection] form is case-insensitive
        name, _, subsection = name.partition(b".")
        return (name, subsection.lower()), rest
    return (name,), rest


class ConfigFile(ConfigDict):
    """Settings read from a single file such as .git/config.

    Attributes:
      path: The file the settings were read from, if any
    """

    def __init__(self, values: dict[Section, dict[Name, Value]] | None = None) -> None:
        super().__init__(values=values)
        self.path: str | None = None

    @classmethod
    def from_file(cls, f: IO[bytes]) -> "ConfigFile":
        """Parse configuration from a binary file object.

        Raises:
          ValueError: if the contents are not valid git config syntax
        """
        ret = cls()
        section: Section | None = None
        # Variable whose value continues on the next line
        pending: tuple[Name, bytes] | None = None
        for lineno, line in enumerate(f):
            if lineno == 0 and line.startswith(UTF8_BOM):
                line = line[len(UTF8_BOM) :]
            line = line.lstrip()
            if pending is not None:
                name, value = pending[0], pending[1] + line
            else:
                if line[:1] == b"[":
                    section, line = _parse_section_header(line)
                    ret._values.setdefault(_normalize_key(section, b"")[0], {})
                if not _strip_comments(line).strip():
                    continue
                if section is None:
                    raise ValueError(f"setting {line!r} without section")
                name, sep, value = line.partition(b"=")
                if not sep:
                    # A bare variable name means true
                    value = b"true"
                name = _strip_comments(name).strip()
                if not _check_variable_name(name):
                    raise ValueError(f"invalid variable name {name!r}")
            assert section is not None
            if _continues(value):
                pending = (name, value.rstrip(b"\r\n")[:-1])
                continue
            pending = None
            ret.set(section, name, _parse_string(value))
        if pending is not None:
            assert section is not None
            ret.set(section, pending[0], _parse_string(pending[1]))
        return ret

    @classmethod
    def from_path(cls, path: str | os.PathLike[str]) -> "ConfigFile":
        """Parse the configuration file at path."""
        filename = os.fspath(path)
        with open(filename, "rb") as f:
            ret = cls.from_file(f)
        ret.path = filename
        return ret


def get_xdg_config_home_path(*path_segments: str) -> str:
    """Join path_segments onto $XDG_CONFIG_HOME, or ~/.config by default."""
    base = os.environ.get("XDG_CONFIG_HOME") or os.path.expanduser("~/.config")
    return os.path.join(base, *path_segments)


class StackedConfig(Config):
    """Settings looked up in several configurations in turn.

    The first backend that sets a value wins.
    """

    def __init__(self, backends: list[ConfigFile]) -> None:
        self.backends = backends

    def __repr__(self) -> str:
        return f"<{type(self).__name__} for {self.backends!r}>"

    @classmethod
    def default(cls) -> "StackedConfig":
        """Return the user and system configuration."""
        return cls(cls.default_backends())

    @classmethod
    def default_backends(cls) -> list[ConfigFile]:
        """Load the user and system configuration files that exist.

        GIT_CONFIG_GLOBAL replaces ~/.gitconfig and the XDG file,
        GIT_CONFIG_SYSTEM replaces /etc/gitconfig and GIT_CONFIG_NOSYSTEM
        skips the system file.
        """
        global_path = os.environ.get("GIT_CONFIG_GLOBAL")
        if global_path is not None:
            paths = [global_path]
        else:
            paths = [
                os.path.expanduser("~/.gitconfig"),
                get_xdg_config_home_path("git", "config"),
            ]
        system_path = os.environ.get("GIT_CONFIG_SYSTEM")
        if system_path is not None:
            paths.append(system_path)
        elif "GIT_CONFIG_NOSYSTEM" not in os.environ:
            paths.append("/etc/gitconfig")

        backends = []
        for path in paths:
            try:
                backends.append(ConfigFile.from_path(path))
            except (FileNotFoundError, IsADirectoryError, NotADirectoryError):
                logger.debug("no config file at %s", path)
        logger.debug("loaded %d config files", len(backends))
        return backends

    def get(self, section: SectionLike, name: NameLike) -> Value:
        for backend in self.backends:
            try:
                return backend.get(section, name)
            except KeyError:
                continue
        raise KeyError(name)


def get_abbrev(config: Config) -> int | None:
    """Read the core.abbrev setting.

    Returns: None if unset, -1 for "auto", the full length for a false
        boolean, otherwise the configured number of digits
    Raises:
      ValueError: if the value is not valid or out of range
    """
    try:
        value = config.get((b"core",), b"abbrev")
    except KeyError:
        return None
    if value.lower() == b"auto":
        return -1
    if value.lower() in (b"false", b"no", b"off", b""):
        return HEX_LENGTH
    try:
        abbrev = int(value)
    except ValueError as exc:
        raise ValueError(f"bad numeric config value {value!r} for 'core.abbrev'") from exc
    if abbrev < MINIMUM_ABBREV or abbrev > HEX_LENGTH:
        raise ValueError(f"abbrev length out of range: {abbrev}")
    return abbrev
