# errors.py -- errors for gitledger
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

"""Exception classes raised by the push and fetch engine."""

# Errors specific to a storage backend live next to that backend.

from collections.abc import Iterable


class GitLedgerError(Exception):
    """Base class for all errors raised by the synchronization engine."""


class ObjectReadError(GitLedgerError):
    """A local object could not be read (missing or corrupt)."""

    def __init__(self, object_id: str, reason: str | None = None) -> None:
        """Initialize an ObjectReadError.

        Args:
          object_id: Hex id of the object that could not be read.
          reason: Optional description of the underlying failure.
        """
        self.object_id = object_id
        message = f"Unable to read object {object_id}"
        if reason is not None:
            message += f": {reason}"
        GitLedgerError.__init__(self, message)


class UnsupportedKind(GitLedgerError):
    """An object is not a commit, tree, tag or blob."""

    def __init__(self, object_id: str, kind: object) -> None:
        self.object_id = object_id
        self.kind = kind
        GitLedgerError.__init__(
            self, f"Don't know how to handle object {object_id} of kind {kind}"
        )


class PullNeededError(GitLedgerError):
    """The remote ref has history that is not available locally."""

    def __init__(self, ref: str, missing: Iterable[str]) -> None:
        """Initialize a PullNeededError.

        Args:
          ref: Name of the remote ref that would lose history.
          missing: Ids reachable from the remote ref that are not local.
        """
        self.ref = ref
        self.missing = frozenset(missing)
        GitLedgerError.__init__(
            self,
            f"There are {len(self.missing)} objects in {ref} not present "
            "locally. Please fetch first or force-push.",
        )


class ObjectNotIndexed(GitLedgerError):
    """An object id is not listed in the remote index."""

    def __init__(self, object_id: str) -> None:
        self.object_id = object_id
        GitLedgerError.__init__(
            self, f"Could not find object {object_id} in the index"
        )


class MintError(GitLedgerError):
    """Uploading an object or registering it on the ledger failed."""


class MissingEventError(GitLedgerError):
    """A finalized mint transaction did not report the minted record."""

    def __init__(self, key: bytes) -> None:
        self.key = key
        GitLedgerError.__init__(
            self,
            f"Mint of {key.decode('utf-8', 'replace')} was finalized "
            "without a minted event",
        )


class IntegrityError(GitLedgerError):
    """A fetched object does not hash to the id it was fetched for."""

    def __init__(
        self, expected: str, got: str | None = None, extra: str | None = None
    ) -> None:
        """Initialize an IntegrityError.

        Args:
          expected: The id the object was requested as.
          got: The id the fetched content actually hashes to, if known.
          extra: Optional additional error information.
        """
        self.expected = expected
        self.got = got
        self.extra = extra
        message = f"Object tree inconsistency detected: fetched {expected}"
        if got is not None:
            message += f", but its content hashes to {got}"
        if extra is not None:
            message += f"; {extra}"
        GitLedgerError.__init__(self, message)


class ConcurrentPublishConflict(GitLedgerError):
    """Another index snapshot was published since this one was loaded."""

    def __init__(self, expected: int | None, found: int | None) -> None:
        self.expected = expected
        self.found = found
        GitLedgerError.__init__(
            self,
            f"Index record changed underneath us: expected {expected}, "
            f"found {found}",
        )


class DecodeError(GitLedgerError):
    """Serialized data could not be decoded."""
