# test_log_utils.py -- Tests for showref.log_utils
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

"""Tests for showref.log_utils."""

import logging
import os
import shutil
import tempfile

from showref.log_utils import (
    _NULL_HANDLER,
    _SHOWREF_LOGGER,
    _configure_logging_from_trace,
    _get_trace_target,
    _NullHandler,
    _should_trace,
    default_logging_config,
    getLogger,
    remove_null_handler,
)

from . import TestCase


class LogUtilsTests(TestCase):
    def setUp(self) -> None:
        super().setUp()
        original_handlers = list(_SHOWREF_LOGGER.handlers)
        root_logger = logging.getLogger()
        original_root_handlers = list(root_logger.handlers)
        original_level = root_logger.level

        def restore() -> None:
            _SHOWREF_LOGGER.handlers = original_handlers
            for handler in root_logger.handlers:
                if handler not in original_root_handlers:
                    handler.close()
            root_logger.handlers = original_root_handlers
            root_logger.level = original_level

        self.addCleanup(restore)
        root_logger.handlers = []
        root_logger.level = logging.WARNING

    def test_null_handler(self) -> None:
        record = logging.LogRecord(
            name="test",
            level=logging.INFO,
            pathname="test_log_utils.py",
            lineno=1,
            msg="Test message",
            args=(),
            exc_info=None,
        )
        _NullHandler().emit(record)

    def test_get_logger(self) -> None:
        logger = getLogger("showref.test")
        self.assertIsInstance(logger, logging.Logger)
        self.assertEqual("showref.test", logger.name)

    def test_package_logger_is_silent_by_default(self) -> None:
        self.assertIn(_NULL_HANDLER, _SHOWREF_LOGGER.handlers)

    def test_remove_null_handler(self) -> None:
        remove_null_handler()
        self.assertNotIn(_NULL_HANDLER, _SHOWREF_LOGGER.handlers)

    def test_default_logging_config(self) -> None:
        default_logging_config()
        self.assertNotIn(_NULL_HANDLER, _SHOWREF_LOGGER.handlers)
        root_logger = logging.getLogger()
        self.assertTrue(root_logger.handlers)
        self.assertEqual(logging.INFO, root_logger.level)

    def test_default_logging_config_with_trace(self) -> None:
        self.overrideEnv("GIT_TRACE", "1")
        default_logging_config()
        root_logger = logging.getLogger()
        self.assertTrue(root_logger.handlers)
        self.assertEqual(logging.DEBUG, root_logger.level)

    def test_should_trace(self) -> None:
        self.assertFalse(_should_trace())
        for value in ("", "0", "false", "FALSE"):
            self.overrideEnv("GIT_TRACE", value)
            self.assertFalse(_should_trace())
        for value in ("1", "/tmp/trace.log"):
            self.overrideEnv("GIT_TRACE", value)
            self.assertTrue(_should_trace())

    def test_get_trace_target_disabled(self) -> None:
        self.assertIsNone(_get_trace_target())
        for value in ("", "0", "false"):
            self.overrideEnv("GIT_TRACE", value)
            self.assertIsNone(_get_trace_target())

    def test_get_trace_target_stderr(self) -> None:
        for value in ("1", "2", "true", "TRUE"):
            self.overrideEnv("GIT_TRACE", value)
            self.assertEqual(2, _get_trace_target())

    def test_get_trace_target_file_descriptor(self) -> None:
        for fd in range(3, 10):
            self.overrideEnv("GIT_TRACE", str(fd))
            self.assertEqual(fd, _get_trace_target())
        self.overrideEnv("GIT_TRACE", "10")
        self.assertIsNone(_get_trace_target())

    def test_get_trace_target_path(self) -> None:
        path = tempfile.mkdtemp()
        self.addCleanup(shutil.rmtree, path)
        self.overrideEnv("GIT_TRACE", path)
        self.assertEqual(path, _get_trace_target())
        self.overrideEnv("GIT_TRACE", "relative/path")
        self.assertIsNone(_get_trace_target())

    def test_configure_logging_to_directory(self) -> None:
        path = tempfile.mkdtemp()
        self.addCleanup(shutil.rmtree, path)
        self.overrideEnv("GIT_TRACE", path)
        self.assertTrue(_configure_logging_from_trace())
        getLogger("showref.test").debug("traced message")
        for handler in logging.getLogger().handlers:
            handler.flush()
        with open(os.path.join(path, f"trace.{os.getpid()}")) as f:
            self.assertIn("showref.test DEBUG: traced message", f.read())

    def test_configure_logging_disabled(self) -> None:
        self.assertFalse(_configure_logging_from_trace())
