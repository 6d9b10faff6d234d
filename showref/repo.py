# repo.py -- For dealing with git repositories.
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


"""Opening repositories.

A repository ties together the refs, the object store and the
configuration that show-ref reads. Repo opens one on local disk,
MemoryRepo wraps in-memory collaborators.
"""

__all__ = [
    "COMMONDIR",
    "CONTROLDIR",
    "OBJECTDIR",
    "REFSDIR",
    "BaseRepo",
    "MemoryRepo",
    "Repo",
    "UnsupportedExtension",
    "UnsupportedVersion",
    "check_repository_format",
    "read_gitfile",
]

import os
from types import TracebackType
from typing import BinaryIO

from .config import ConfigDict, ConfigFile, StackedConfig
from .errors import NotGitRepository
from .log_utils import getLogger
from .object_store import BaseObjectStore, DiskObjectStore, MemoryObjectStore
from .refs import DictRefsContainer, DiskRefsContainer, RefsContainer

logger = getLogger(__name__)

CONTROLDIR = ".git"
OBJECTDIR = "objects"
REFSDIR = "refs"
COMMONDIR = "commondir"

GITFILE_PREFIX = b"gitdir: "

# Extensions that do not change how refs or objects are read
_HARMLESS_EXTENSIONS = (b"noop", b"worktreeconfig", b"preciousobjects")


class UnsupportedVersion(Exception):
    """The repository format version is newer than we understand."""

    def __init__(self, version: int) -> None:
        super().__init__(version)
        self.version = version


class UnsupportedExtension(Exception):
    """The repository uses an extension we can not honour."""

    def __init__(self, extension: str) -> None:
        super().__init__(extension)
        self.extension = extension


def read_gitfile(f: BinaryIO) -> str:
    """Return the control directory a ``.git`` file points at.

    Raises:
      ValueError: if the file does not start with "gitdir: "
    """
    contents = f.read()
    if not contents.startswith(GITFILE_PREFIX):
        raise ValueError("gitfile does not start with 'gitdir: '")
    return os.fsdecode(contents[len(GITFILE_PREFIX) :].rstrip(b"\r\n"))


def check_repository_format(config: ConfigDict) -> None:
    """Refuse repositories whose on-disk format can not be read correctly.

    Raises:
      UnsupportedVersion: for core.repositoryformatversion other than 0 or 1
      UnsupportedExtension: for a version 1 repository using an extension
        other than sha1 objects, files ref storage or a harmless one
      ValueError: if the format version is not a number
    """
    try:
        version = int(config.get((b"core",), b"repositoryformatversion"))
    except KeyError:
        version = 0
    if version not in (0, 1):
        raise UnsupportedVersion(version)
    if version == 0:
        # Version 0 repositories ignore extensions entirely
        return
    for name, value in config.items((b"extensions",)):
        if name == b"objectformat":
            if value.lower() != b"sha1":
                raise UnsupportedExtension(f"objectFormat = {value.decode()}")
        elif name == b"refstorage":
            if value.lower() != b"files":
                raise UnsupportedExtension(f"refStorage = {value.decode()}")
        elif name not in _HARMLESS_EXTENSIONS:
            raise UnsupportedExtension(name.decode("utf-8"))


class BaseRepo:
    """A repository: refs and objects plus configuration.

    Attributes:
      object_store: The object store the refs point into
      refs: The refs container
    """

    def __init__(self, object_store: BaseObjectStore, refs: RefsContainer) -> None:
        self.object_store = object_store
        self.refs = refs

    def get_config(self) -> ConfigFile:
        """Return the repository's own configuration."""
        raise NotImplementedError(self.get_config)

    def get_config_stack(self) -> StackedConfig:
        """Return the configuration as git sees it.

        Settings in the repository config take precedence over the user's
        and the system's.
        """
        return StackedConfig([self.get_config(), *StackedConfig.default_backends()])

    def close(self) -> None:
        """Release the files held open by the object store."""
        self.object_store.close()

    def __enter__(self) -> "BaseRepo":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.close()


def _looks_like_controldir(path: str) -> bool:
    return os.path.isdir(os.path.join(path, OBJECTDIR)) and os.path.isdir(
        os.path.join(path, REFSDIR)
    )


class Repo(BaseRepo):
    """A repository on local disk.

    The repository may be a work tree with a ``.git`` directory, a work
    tree whose ``.git`` file points elsewhere (linked work trees and
    submodules), a bare repository, or the control directory of a
    linked work tree.

    Attributes:
      path: The directory the repository was opened from
      bare: Whether path is the control directory itself
    """

    path: str
    bare: bool
    object_store: DiskObjectStore
    refs: DiskRefsContainer

    def __init__(
        self, root: str | bytes | os.PathLike[str], bare: bool | None = None
    ) -> None:
        """Open the repository at root.

        Args:
          root: Work tree or control directory
          bare: Whether root is the control directory; detected when None
        Raises:
          NotGitRepository: if root is not a repository
        """
        root = os.fsdecode(os.fspath(root))
        dotgit = os.path.join(root, CONTROLDIR)
        if bare is None:
            if os.path.isfile(dotgit) or os.path.isdir(
                os.path.join(dotgit, OBJECTDIR)
            ):
                bare = False
            elif _looks_like_controldir(root) or os.path.isfile(
                os.path.join(root, COMMONDIR)
            ):
                bare = True
            else:
                raise NotGitRepository(f"No git repository was found at {root}")
        self.path = root
        self.bare = bare
        if bare:
            self._controldir = root
        elif os.path.isfile(dotgit):
            with open(dotgit, "rb") as f:
                try:
                    target = read_gitfile(f)
                except ValueError as exc:
                    raise NotGitRepository(f"invalid gitfile format: {dotgit}") from exc
            self._controldir = os.path.join(root, target)
        else:
            self._controldir = dotgit
        self._commondir = self._read_commondir()

        check_repository_format(self.get_config())

        BaseRepo.__init__(
            self,
            DiskObjectStore.from_repository_path(self._commondir),
            DiskRefsContainer(self._commondir, self._controldir),
        )
        logger.debug("opened repository at %s", self._controldir)

    def _read_commondir(self) -> str:
        f = self.get_named_file(COMMONDIR)
        if f is None:
            return self._controldir
        with f:
            relative = os.fsdecode(f.read().rstrip(b"\r\n"))
        return os.path.join(self._controldir, relative)

    def __repr__(self) -> str:
        return f"<Repo at {self.path!r}>"

    @classmethod
    def discover(cls, start: str | bytes | os.PathLike[str] = ".") -> "Repo":
        """Open the repository containing start, searching upwards."""
        path = os.path.abspath(os.fsdecode(os.fspath(start)))
        while True:
            try:
                return cls(path)
            except NotGitRepository:
                parent = os.path.dirname(path)
                if parent == path:
                    break
                path = parent
        raise NotGitRepository(
            f"No git repository was found at {os.fsdecode(os.fspath(start))}"
        )

    @classmethod
    def from_environment(cls) -> "Repo":
        """Open the repository named by GIT_DIR, or discover one from the cwd."""
        git_dir = os.environ.get("GIT_DIR")
        if git_dir:
            return cls(git_dir, bare=True)
        return cls.discover()

    def controldir(self) -> str:
        """Return the directory holding HEAD and the per-worktree refs."""
        return self._controldir

    def commondir(self) -> str:
        """Return the directory holding the shared refs, objects and config.

        This differs from controldir() only for linked work trees.
        """
        return self._commondir

    def get_named_file(self, path: str) -> BinaryIO | None:
        """Open a file in the control directory for reading.

        Returns: The open file, or None if it does not exist
        """
        try:
            return open(os.path.join(self._controldir, path.lstrip(os.path.sep)), "rb")
        except FileNotFoundError:
            return None

    def get_config(self) -> ConfigFile:
        path = os.path.join(self._commondir, "config")
        try:
            return ConfigFile.from_path(path)
        except FileNotFoundError:
            config = ConfigFile()
            config.path = path
            return config


class MemoryRepo(BaseRepo):
    """Repository over in-memory refs and objects.

    Only its own configuration is consulted; user and system config files
    are ignored.
    """

    def __init__(
        self,
        refs: RefsContainer | None = None,
        object_store: BaseObjectStore | None = None,
        config: ConfigFile | None = None,
    ) -> None:
        BaseRepo.__init__(
            self,
            object_store if object_store is not None else MemoryObjectStore(),
            refs if refs is not None else DictRefsContainer({}),
        )
        self._config = config if config is not None else ConfigFile()
        self.bare = True

    def get_config(self) -> ConfigFile:
        return self._config

    def get_config_stack(self) -> StackedConfig:
        return StackedConfig([self._config])
