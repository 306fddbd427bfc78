# ledger.py -- Append-only ledger of content records
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

"""Append-only ledger of content records.

A ledger record binds a key (an object id, or the index label) to the
content address of a blob. Records are created by minting: submitting a
:class:`MintTransaction` and waiting for it to reach finality. Records are
grouped into containers; adding freshly minted records to a container is
left to the caller.
"""

__all__ = [
    "DiskLedger",
    "Ledger",
    "LedgerError",
    "LedgerRecord",
    "MemoryLedger",
    "MintTransaction",
    "MintedEvent",
    "find_minted_event",
]

import json
import os
import threading
from collections.abc import Iterable, Sequence
from typing import NamedTuple

from dulwich.file import GitFile, ensure_dir_exists

from .log_utils import getLogger

logger = getLogger(__name__)


class LedgerError(Exception):
    """Submitting to or querying the ledger failed."""


class MintTransaction(NamedTuple):
    """Request to register ``key`` as pointing at ``content_ref``."""

    key: bytes
    content_ref: str


class MintedEvent(NamedTuple):
    """Emitted when a mint transaction is finalized."""

    key: bytes
    record_id: int


class LedgerRecord(NamedTuple):
    record_id: int
    key: bytes
    content_ref: str


def find_minted_event(
    events: Iterable[object], key: bytes | None = None
) -> MintedEvent | None:
    """Return the first minted event, optionally only one for ``key``."""
    for event in events:
        if isinstance(event, MintedEvent) and (key is None or event.key == key):
            return event
    return None


class Ledger:
    """Interface to a ledger."""

    def submit_and_await_finality(self, tx: MintTransaction) -> list[object]:
        """Submit a transaction and block until it is finalized.

        Returns: the events emitted by the transaction
        Raises:
          LedgerError: if submission fails or finality is not reached
        """
        raise NotImplementedError(self.submit_and_await_finality)

    def get_record_set(self, container_id: int) -> list[LedgerRecord]:
        """List the records currently in a container.

        An unknown container is empty.
        """
        raise NotImplementedError(self.get_record_set)

    def update_record_set(
        self,
        container_id: int,
        add: Iterable[int] = (),
        remove: Iterable[int] = (),
    ) -> None:
        """Add minted records to and remove records from a container."""
        raise NotImplementedError(self.update_record_set)


class MemoryLedger(Ledger):
    """Ledger that keeps all records in memory and finalizes immediately."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._records: dict[int, LedgerRecord] = {}
        self._containers: dict[int, list[int]] = {}
        self._next_record_id = 0

    def submit_and_await_finality(self, tx: MintTransaction) -> list[object]:
        if not isinstance(tx, MintTransaction):
            raise LedgerError(f"Unsupported transaction {tx!r}")
        with self._lock:
            record_id = self._next_record_id
            self._next_record_id += 1
            self._records[record_id] = LedgerRecord(record_id, tx.key, tx.content_ref)
            self._committed()
        logger.debug("Minted record %d for %r", record_id, tx.key)
        return [MintedEvent(tx.key, record_id)]

    def get_record(self, record_id: int) -> LedgerRecord:
        with self._lock:
            try:
                return self._records[record_id]
            except KeyError:
                raise LedgerError(f"Record {record_id} does not exist") from None

    def get_record_set(self, container_id: int) -> list[LedgerRecord]:
        with self._lock:
            return [
                self._records[record_id]
                for record_id in self._containers.get(container_id, [])
            ]

    def update_record_set(
        self,
        container_id: int,
        add: Iterable[int] = (),
        remove: Iterable[int] = (),
    ) -> None:
        add = list(add)
        remove = set(remove)
        with self._lock:
            for record_id in add:
                if record_id not in self._records:
                    raise LedgerError(f"Record {record_id} does not exist")
            members = [
                record_id
                for record_id in self._containers.get(container_id, [])
                if record_id not in remove
            ]
            for record_id in add:
                if record_id not in members:
                    members.append(record_id)
            self._containers[container_id] = members
            self._committed()

    def _committed(self) -> None:
        """Called with the lock held after every state change."""


class DiskLedger(MemoryLedger):
    """Ledger persisted to a single JSON file, rewritten on every change."""

    def __init__(self, path: str | os.PathLike[str]) -> None:
        super().__init__()
        self.path = os.fspath(path)
        if os.path.exists(self.path):
            self._load()

    def __repr__(self) -> str:
        return f"<{type(self).__name__}({self.path!r})>"

    def _load(self) -> None:
        try:
            with open(self.path, "rb") as f:
                state = json.load(f)
            self._next_record_id = state["next_record_id"]
            for record in state["records"]:
                record_id = int(record["id"])
                self._records[record_id] = LedgerRecord(
                    record_id, bytes.fromhex(record["key"]), record["content_ref"]
                )
            self._containers = {
                int(container_id): [int(r) for r in members]
                for container_id, members in state["containers"].items()
            }
        except (OSError, ValueError, KeyError, TypeError) as e:
            raise LedgerError(f"Unable to load ledger state from {self.path}: {e}") from e

    def _state(self) -> dict:
        records: Sequence[LedgerRecord] = sorted(self._records.values())
        return {
            "next_record_id": self._next_record_id,
            "records": [
                {"id": r.record_id, "key": r.key.hex(), "content_ref": r.content_ref}
                for r in records
            ],
            "containers": {
                str(container_id): members
                for container_id, members in sorted(self._containers.items())
            },
        }

    def _committed(self) -> None:
        data = json.dumps(self._state(), indent=2).encode("utf-8")
        try:
            ensure_dir_exists(os.path.dirname(os.path.abspath(self.path)))
            with GitFile(self.path, "wb") as f:
                f.write(data)
        except OSError as e:
            raise LedgerError(f"Unable to write ledger state to {self.path}: {e}") from e
