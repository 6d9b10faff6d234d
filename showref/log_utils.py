# log_utils.py -- Logging utilities for showref
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

"""Logging setup shared by the showref modules.

Library users get no output from showref unless they ask for it: the
package logger starts out with a handler that drops every record. The
command line entry point calls default_logging_config(), which removes
that handler and sends messages to stderr, or wherever GIT_TRACE points.

Modules obtain their loggers through getLogger, re-exported from logging.
"""

import logging
import os
import sys
from typing import TextIO

getLogger = logging.getLogger

TRACE_FORMAT = "%(asctime)s %(name)s %(levelname)s: %(message)s"

_DISABLED_TRACE_VALUES = ("", "0", "false")
_STDERR_TRACE_VALUES = ("1", "2", "true")


class _NullHandler(logging.Handler):
    """Handler that discards everything it is given."""

    def emit(self, record: logging.LogRecord) -> None:
        pass


_NULL_HANDLER = _NullHandler()
_SHOWREF_LOGGER = getLogger("showref")
_SHOWREF_LOGGER.addHandler(_NULL_HANDLER)


def _trace_setting() -> str:
    return os.environ.get("GIT_TRACE", "")


def _should_trace() -> bool:
    return _trace_setting().lower() not in _DISABLED_TRACE_VALUES


def _get_trace_target() -> str | int | None:
    """Work out where GIT_TRACE asks for trace output to go.

    Returns: None when tracing is off or the value is not understood, 2
      for stderr, a descriptor number between 3 and 9, or an absolute
      path naming a file or a directory.
    """
    value = _trace_setting()
    lowered = value.lower()
    if lowered in _DISABLED_TRACE_VALUES:
        return None
    if lowered in _STDERR_TRACE_VALUES:
        return 2
    if value.isdigit():
        fd = int(value)
        return fd if 3 <= fd <= 9 else None
    if os.path.isabs(value):
        return value
    return None


def _trace_to_stream(stream: TextIO) -> None:
    logging.basicConfig(level=logging.DEBUG, stream=stream, format=TRACE_FORMAT)


def _configure_logging_from_trace() -> bool:
    """Send DEBUG and above to the GIT_TRACE target.

    Returns: whether tracing was set up
    """
    target = _get_trace_target()
    if target is None:
        return False
    if target == 2:
        _trace_to_stream(sys.stderr)
        return True
    if isinstance(target, int):
        try:
            stream = os.fdopen(target, "w", buffering=1)
        except OSError as exc:
            sys.stderr.write(f"warning: cannot trace to fd {target}: {exc}\n")
            return False
        _trace_to_stream(stream)
        return True
    # A directory gets one trace file per process
    if os.path.isdir(target):
        target = os.path.join(target, f"trace.{os.getpid()}")
    try:
        logging.basicConfig(
            level=logging.DEBUG, filename=target, filemode="a", format=TRACE_FORMAT
        )
    except OSError as exc:
        sys.stderr.write(f"warning: cannot trace to {target}: {exc}\n")
        return False
    return True


def default_logging_config() -> None:
    """Configure logging for command line use.

    Without GIT_TRACE, records at INFO and above are written to stderr as
    bare messages, matching how git prints its warnings and fatal errors.
    """
    remove_null_handler()
    if _configure_logging_from_trace():
        return
    logging.basicConfig(level=logging.INFO, stream=sys.stderr, format="%(message)s")


def remove_null_handler() -> None:
    """Detach the discarding handler from the package logger.

    Applications that configure logging themselves can call this so that
    records are not routed through a handler that ignores them.
    """
    _SHOWREF_LOGGER.removeHandler(_NULL_HANDLER)
