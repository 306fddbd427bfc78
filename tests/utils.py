# utils.py -- Test utilities for gitledger
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

"""Utility functions common to gitledger tests."""

from dulwich.objects import Blob, Commit, ShaFile, Tag, Tree

from gitledger import log_utils
from gitledger.blobstore import MemoryBlobStore
from gitledger.ledger import MemoryLedger
from gitledger.log_utils import _GITLEDGER_LOGGER
from gitledger.remote import LedgerRemote

# Plain files are very frequently used in tests, so let the mode be very short.
F = 0o100644
# Mode of tree entries pointing at a submodule commit.
GITLINK = 0o160000

DEFAULT_TIME = 1262304000  # 2010-01-01


def hexid(obj: ShaFile) -> str:
    return obj.id.decode("ascii")


def make_blob(data: bytes) -> Blob:
    return Blob.from_string(data)


def make_tree(entries=()) -> Tree:
    """Make a tree from (name, mode, sha) tuples."""
    tree = Tree()
    for name, mode, sha in entries:
        tree.add(name, mode, sha)
    return tree


def make_commit(tree: bytes, parents=(), message: bytes = b"Test message.") -> Commit:
    """Make a Commit object with a default set of members."""
    commit = Commit()
    commit.tree = tree
    commit.parents = list(parents)
    commit.author = commit.committer = b"Test Author <test@nodomain.com>"
    commit.author_time = commit.commit_time = DEFAULT_TIME
    commit.author_timezone = commit.commit_timezone = 0
    commit.message = message
    return commit


def make_tag(target: ShaFile, name: bytes = b"v1.0") -> Tag:
    tag = Tag()
    tag.object = (type(target), target.id)
    tag.name = name
    tag.tagger = b"Test Tagger <test@nodomain.com>"
    tag.tag_time = DEFAULT_TIME
    tag.tag_timezone = 0
    tag.message = b"Tagged " + name
    return tag


def add_objects(repo, *objects: ShaFile) -> None:
    for obj in objects:
        repo.object_store.add_object(obj)


def make_remote(ledger=None, blob_store=None, container_id: int = 1) -> LedgerRemote:
    return LedgerRemote(
        blob_store if blob_store is not None else MemoryBlobStore(),
        ledger if ledger is not None else MemoryLedger(),
        container_id,
    )


def restore_gitledger_logger(test) -> None:
    """Undo any logging setup a test performs on the gitledger logger."""
    handlers = list(_GITLEDGER_LOGGER.handlers)
    level = _GITLEDGER_LOGGER.level
    propagate = _GITLEDGER_LOGGER.propagate
    installed = log_utils._installed_handler

    def restore() -> None:
        for handler in _GITLEDGER_LOGGER.handlers:
            if handler not in handlers:
                handler.close()
        _GITLEDGER_LOGGER.handlers = handlers
        _GITLEDGER_LOGGER.setLevel(level)
        _GITLEDGER_LOGGER.propagate = propagate
        log_utils._installed_handler = installed

    test.addCleanup(restore)
