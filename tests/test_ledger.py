# test_ledger.py -- tests for ledger.py
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

"""Tests for the ledger backends."""

import json
import os
import shutil
import tempfile

from gitledger.ledger import (
    DiskLedger,
    LedgerError,
    LedgerRecord,
    MemoryLedger,
    MintedEvent,
    MintTransaction,
    find_minted_event,
)

from . import TestCase


class FindMintedEventTests(TestCase):
    def test_first(self) -> None:
        events = ["transfer", MintedEvent(b"a", 1), MintedEvent(b"b", 2)]
        self.assertEqual(MintedEvent(b"a", 1), find_minted_event(events))

    def test_by_key(self) -> None:
        events = [MintedEvent(b"a", 1), MintedEvent(b"b", 2)]
        self.assertEqual(MintedEvent(b"b", 2), find_minted_event(events, b"b"))

    def test_none(self) -> None:
        self.assertIsNone(find_minted_event([]))
        self.assertIsNone(find_minted_event([MintedEvent(b"a", 1)], b"c"))


class LedgerTests:
    """Tests shared by all ledger backends."""

    def test_mint(self) -> None:
        events = self.ledger.submit_and_await_finality(MintTransaction(b"key", "ref"))
        self.assertEqual([MintedEvent(b"key", 0)], events)
        self.assertEqual(
            [MintedEvent(b"key2", 1)],
            self.ledger.submit_and_await_finality(MintTransaction(b"key2", "ref2")),
        )

    def test_unknown_container(self) -> None:
        self.assertEqual([], self.ledger.get_record_set(42))

    def test_minted_not_in_container(self) -> None:
        self.ledger.submit_and_await_finality(MintTransaction(b"key", "ref"))
        self.assertEqual([], self.ledger.get_record_set(1))

    def test_update_record_set(self) -> None:
        for key in (b"a", b"b", b"c"):
            self.ledger.submit_and_await_finality(MintTransaction(key, "ref"))
        self.ledger.update_record_set(1, add=[0, 1])
        self.ledger.update_record_set(1, add=[2, 1], remove=[0])
        self.assertEqual(
            [LedgerRecord(1, b"b", "ref"), LedgerRecord(2, b"c", "ref")],
            self.ledger.get_record_set(1),
        )
        self.assertEqual([], self.ledger.get_record_set(2))

    def test_add_unknown_record(self) -> None:
        self.assertRaises(LedgerError, self.ledger.update_record_set, 1, add=[5])
        self.assertEqual([], self.ledger.get_record_set(1))

    def test_get_record(self) -> None:
        self.ledger.submit_and_await_finality(MintTransaction(b"key", "ref"))
        self.assertEqual(LedgerRecord(0, b"key", "ref"), self.ledger.get_record(0))
        self.assertRaises(LedgerError, self.ledger.get_record, 1)

    def test_unsupported_transaction(self) -> None:
        self.assertRaises(
            LedgerError, self.ledger.submit_and_await_finality, ("key", "ref")
        )


class MemoryLedgerTests(LedgerTests, TestCase):
    def setUp(self) -> None:
        super().setUp()
        self.ledger = MemoryLedger()


class DiskLedgerTests(LedgerTests, TestCase):
    def setUp(self) -> None:
        super().setUp()
        self.tempdir = tempfile.mkdtemp()
        self.addCleanup(shutil.rmtree, self.tempdir)
        self.path = os.path.join(self.tempdir, "state", "ledger.json")
        self.ledger = DiskLedger(self.path)

    def test_persistent(self) -> None:
        self.ledger.submit_and_await_finality(MintTransaction(b"\x00key", "ref"))
        self.ledger.submit_and_await_finality(MintTransaction(b"other", "ref2"))
        self.ledger.update_record_set(3, add=[1, 0])

        reloaded = DiskLedger(self.path)
        self.assertEqual(
            [LedgerRecord(1, b"other", "ref2"), LedgerRecord(0, b"\x00key", "ref")],
            reloaded.get_record_set(3),
        )
        self.assertEqual(
            [MintedEvent(b"new", 2)],
            reloaded.submit_and_await_finality(MintTransaction(b"new", "ref3")),
        )

    def test_state_format(self) -> None:
        self.ledger.submit_and_await_finality(MintTransaction(b"ab", "ref"))
        with open(self.path, "rb") as f:
            state = json.load(f)
        self.assertEqual(1, state["next_record_id"])
        self.assertEqual(
            [{"id": 0, "key": "6162", "content_ref": "ref"}], state["records"]
        )

    def test_corrupt_state(self) -> None:
        os.makedirs(os.path.dirname(self.path), exist_ok=True)
        with open(self.path, "wb") as f:
            f.write(b"{not json")
        self.assertRaises(LedgerError, DiskLedger, self.path)
