# log_utils.py -- Logging utilities for gitledger
# Copyright (C) 2026 The gitledger Authors
#
# SPDX-License-Identifier: Apache-2.0 OR GPL-2.0-or-later
# gitledger is dual-licensed under the Apache License, Version 2.0 and the GNU
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


"""Logging for gitledger.

Library users get no output: the ``gitledger`` logger carries a handler
that drops everything until :func:`default_logging_config` installs a real
one. The remote helper calls it on startup.

The remote helper owns stdout for its conversation with git, so log output
only ever goes to stderr, or to the file named by ``GIT_TRACE``:

- unset, empty, ``0`` or ``false``: progress messages at INFO on stderr;
- ``1``, ``2`` or ``true``: DEBUG trace on stderr;
- an absolute path: DEBUG trace appended to that file.

Any other value of ``GIT_TRACE`` (such as a file descriptor number, which
git itself accepts) falls back to the default.
"""

import logging
import os
import sys

getLogger = logging.getLogger

_GITLEDGER_LOGGER = getLogger("gitledger")

_PROGRESS_FORMAT = "%(message)s"
# Mimics the "trace:" lines git writes itself.
_TRACE_FORMAT = "%(asctime)s.%(msecs)03d trace: %(name)s: %(message)s"
_TRACE_DATE_FORMAT = "%H:%M:%S"


class _NullHandler(logging.Handler):
    """Handler that discards all records."""

    def emit(self, record: logging.LogRecord) -> None:
        pass


_NULL_HANDLER = _NullHandler()
_GITLEDGER_LOGGER.addHandler(_NULL_HANDLER)

# Handler installed by default_logging_config, if any.
_installed_handler: logging.Handler | None = None


def _trace_handler() -> logging.Handler | None:
    """Return a DEBUG handler for the GIT_TRACE target, or None."""
    target = os.environ.get("GIT_TRACE", "")
    if target.lower() in ("", "0", "false"):
        return None
    if target.lower() in ("1", "2", "true"):
        return logging.StreamHandler(sys.stderr)
    if not os.path.isabs(target):
        return None
    try:
        return logging.FileHandler(target, mode="a", encoding="utf-8")
    except OSError as e:
        sys.stderr.write(f"warning: unable to open GIT_TRACE file {target}: {e}\n")
        return None


def default_logging_config() -> logging.Handler:
    """Send gitledger log records to stderr or the GIT_TRACE file.

    Calling this again replaces the handler installed by the previous call.
    Records are not passed on to the root logger, so a root handler that
    writes to stdout can not corrupt the remote helper protocol.

    Returns: the installed handler
    """
    global _installed_handler

    remove_null_handler()
    if _installed_handler is not None:
        _GITLEDGER_LOGGER.removeHandler(_installed_handler)
        _installed_handler.close()

    handler = _trace_handler()
    if handler is None:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(_PROGRESS_FORMAT))
        level = logging.INFO
    else:
        handler.setFormatter(logging.Formatter(_TRACE_FORMAT, _TRACE_DATE_FORMAT))
        level = logging.DEBUG

    _GITLEDGER_LOGGER.addHandler(handler)
    _GITLEDGER_LOGGER.setLevel(level)
    _GITLEDGER_LOGGER.propagate = False
    _installed_handler = handler
    return handler


def remove_null_handler() -> None:
    """Stop discarding gitledger log records."""
    _GITLEDGER_LOGGER.removeHandler(_NULL_HANDLER)
