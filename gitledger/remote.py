# remote.py -- Object upload and download over a blob store and a ledger
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

"""Upload and download primitives for a ledger-backed remote.

A remote is a container on a ledger together with the blob store its
records point into. Every git object is stored as its own blob and
registered under its object id; the index is registered under
:data:`INDEX_KEY`.
"""

__all__ = [
    "INDEX_KEY",
    "LedgerRemote",
    "RecordNotFound",
]

import threading
from collections.abc import Iterable

from .blobstore import BlobStore, BlobStoreError
from .errors import GitLedgerError, IntegrityError, MintError, MissingEventError
from .ledger import (
    Ledger,
    LedgerError,
    LedgerRecord,
    MintTransaction,
    find_minted_event,
)
from .log_utils import getLogger
from .objects import GitObject

logger = getLogger(__name__)

# Ledger key of the records holding serialized indexes.
INDEX_KEY = b"RepoData"


class RecordNotFound(GitLedgerError):
    """The container holds no record for a key."""

    def __init__(self, key: bytes, container_id: int) -> None:
        self.key = key
        self.container_id = container_id
        GitLedgerError.__init__(
            self,
            f"No record for {key.decode('utf-8', 'replace')} "
            f"in container {container_id}",
        )


class LedgerRemote:
    """A container on a ledger plus the blob store holding its content."""

    def __init__(
        self, blob_store: BlobStore, ledger: Ledger, container_id: int
    ) -> None:
        self.blob_store = blob_store
        self.ledger = ledger
        self.container_id = container_id
        self._records: dict[bytes, LedgerRecord] | None = None
        self._lock = threading.Lock()

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}({self.blob_store!r}, {self.ledger!r}, "
            f"{self.container_id!r})"
        )

    def mint(self, key: bytes, data: bytes) -> int:
        """Store data and register it on the ledger under key.

        Blocks until the mint transaction is finalized.

        Returns: id of the new ledger record
        Raises:
          MintError: if the upload, the submission or finality fails
          MissingEventError: if the finalized transaction reports no record
        """
        try:
            content_ref = self.blob_store.put(data)
        except BlobStoreError as e:
            raise MintError(f"Unable to upload {key!r}: {e}") from e
        logger.debug("Sending %r (%s) to the ledger", key, content_ref)
        try:
            events = self.ledger.submit_and_await_finality(
                MintTransaction(key, content_ref)
            )
        except LedgerError as e:
            raise MintError(f"Unable to mint {key!r}: {e}") from e
        event = find_minted_event(events, key)
        if event is None:
            raise MissingEventError(key)
        return event.record_id

    def mint_object(self, git_object: GitObject) -> int:
        """Upload a git object and register it under its object id."""
        return self.mint(git_object.object_id.encode("ascii"), git_object.as_bytes())

    def _load_records(self) -> dict[bytes, LedgerRecord]:
        records: dict[bytes, LedgerRecord] = {}
        for record in self.ledger.get_record_set(self.container_id):
            # The first record for a key wins, matching a linear scan.
            records.setdefault(record.key, record)
        return records

    def refresh(self) -> None:
        """Forget the cached record set of the container."""
        with self._lock:
            self._records = None

    def lookup(self, key: bytes) -> LedgerRecord:
        """Find the record for key in the container.

        The record set is cached; a miss refreshes the cache once.

        Raises:
          RecordNotFound: if no record carries the key
        """
        with self._lock:
            if self._records is not None and key in self._records:
                return self._records[key]
            self._records = self._load_records()
            try:
                return self._records[key]
            except KeyError:
                raise RecordNotFound(key, self.container_id) from None

    def find_index_record(self) -> LedgerRecord | None:
        """Return the record holding the current index, if any."""
        self.refresh()
        try:
            return self.lookup(INDEX_KEY)
        except RecordNotFound:
            return None

    def get_blob(self, record: LedgerRecord) -> bytes:
        return self.blob_store.get(record.content_ref)

    def get_object(self, object_id: str) -> GitObject:
        """Download and decode the object registered under object_id.

        Raises:
          RecordNotFound: if the container has no record for the object
          IntegrityError: if the stored object claims a different id
        """
        record = self.lookup(object_id.encode("ascii"))
        git_object = GitObject.from_bytes(self.get_blob(record))
        if git_object.object_id != object_id:
            raise IntegrityError(
                object_id,
                extra=f"record {record.record_id} holds object {git_object.object_id}",
            )
        return git_object

    def update_record_set(
        self, add: Iterable[int] = (), remove: Iterable[int] = ()
    ) -> None:
        """Add and retire records in the container."""
        self.ledger.update_record_set(self.container_id, add=add, remove=remove)
        self.refresh()
