# test_objects.py -- tests for objects.py
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

"""Tests for the portable object model."""

from dulwich.repo import MemoryRepo

from gitledger.errors import DecodeError, ObjectReadError, UnsupportedKind
from gitledger.objects import (
    BlobMetadata,
    CommitMetadata,
    GitObject,
    TagMetadata,
    TreeMetadata,
)

from . import TestCase
from .utils import (
    F,
    GITLINK,
    add_objects,
    hexid,
    make_blob,
    make_commit,
    make_tag,
    make_tree,
)

SUBMODULE_ID = "5" * 40


class GitObjectTests(TestCase):
    def setUp(self) -> None:
        super().setUp()
        self.repo = MemoryRepo()
        self.store = self.repo.object_store
        self.blob = make_blob(b"hello\n")
        self.tree = make_tree(
            [(b"hello", F, self.blob.id), (b"sub", GITLINK, SUBMODULE_ID.encode())]
        )
        self.parent = make_commit(self.tree.id, message=b"first")
        self.commit = make_commit(self.tree.id, parents=[self.parent.id])
        self.tag = make_tag(self.commit)
        add_objects(self.repo, self.blob, self.tree, self.parent, self.commit, self.tag)

    def test_from_blob(self) -> None:
        obj = GitObject.from_blob(self.blob, self.store)
        self.assertEqual(hexid(self.blob), obj.object_id)
        self.assertEqual(b"hello\n", obj.raw_bytes)
        self.assertEqual(BlobMetadata(), obj.metadata)
        self.assertEqual([], list(obj.references()))

    def test_from_commit(self) -> None:
        obj = GitObject.from_commit(self.commit, self.store)
        self.assertEqual(self.commit.as_raw_string(), obj.raw_bytes)
        self.assertEqual(
            CommitMetadata(frozenset([hexid(self.parent)]), hexid(self.tree)),
            obj.metadata,
        )
        self.assertEqual("commit", obj.type_name)

    def test_from_root_commit(self) -> None:
        obj = GitObject.from_commit(self.parent, self.store)
        self.assertEqual(frozenset(), obj.metadata.parent_ids)

    def test_from_tree_includes_submodules(self) -> None:
        obj = GitObject.from_tree(self.tree, self.store)
        self.assertEqual(
            TreeMetadata(frozenset([hexid(self.blob), SUBMODULE_ID])), obj.metadata
        )

    def test_from_tag(self) -> None:
        obj = GitObject.from_tag(self.tag, self.store)
        self.assertEqual(TagMetadata(hexid(self.commit)), obj.metadata)
        self.assertEqual(self.tag.as_raw_string(), obj.raw_bytes)

    def test_from_shafile_dispatch(self) -> None:
        for native, metadata_cls in [
            (self.blob, BlobMetadata),
            (self.tree, TreeMetadata),
            (self.commit, CommitMetadata),
            (self.tag, TagMetadata),
        ]:
            obj = GitObject.from_shafile(native, self.store)
            self.assertIsInstance(obj.metadata, metadata_cls)
            self.assertEqual(native.type_num, obj.type_num)

    def test_from_shafile_unsupported(self) -> None:
        class Weird:
            id = b"1" * 40
            type_name = b"weird"

        self.assertRaises(
            UnsupportedKind, GitObject.from_shafile, Weird(), self.store
        )

    def test_from_store(self) -> None:
        obj = GitObject.from_store(self.store, hexid(self.commit))
        self.assertEqual(GitObject.from_commit(self.commit, self.store), obj)

    def test_from_store_missing(self) -> None:
        with self.assertRaises(ObjectReadError) as cm:
            GitObject.from_store(self.store, "a" * 40)
        self.assertEqual("a" * 40, cm.exception.object_id)

    def test_raw_read_missing(self) -> None:
        orphan = make_blob(b"not stored")
        self.assertRaises(ObjectReadError, GitObject.from_blob, orphan, self.store)

    def test_as_shafile(self) -> None:
        for native in [self.blob, self.tree, self.commit, self.tag]:
            obj = GitObject.from_shafile(native, self.store)
            self.assertEqual(native.id, obj.as_shafile().id)

    def test_as_shafile_tampered(self) -> None:
        obj = GitObject(hexid(self.blob), b"tampered\n", BlobMetadata())
        self.assertNotEqual(self.blob.id, obj.as_shafile().id)


class EncodingTests(TestCase):
    def setUp(self) -> None:
        super().setUp()
        self.repo = MemoryRepo()
        blob = make_blob(b"data")
        tree = make_tree([(b"data", F, blob.id)])
        parent = make_commit(tree.id, message=b"parent")
        commit = make_commit(tree.id, parents=[parent.id])
        tag = make_tag(commit)
        add_objects(self.repo, blob, tree, parent, commit, tag)
        self.natives = [blob, tree, parent, commit, tag]

    def test_round_trip(self) -> None:
        for native in self.natives:
            obj = GitObject.from_shafile(native, self.repo.object_store)
            self.assertEqual(obj, GitObject.from_bytes(obj.as_bytes()))

    def test_stable(self) -> None:
        a = GitObject("a" * 40, b"", CommitMetadata(["c" * 40, "b" * 40], "d" * 40))
        b = GitObject("a" * 40, b"", CommitMetadata(["b" * 40, "c" * 40], "d" * 40))
        self.assertEqual(a.as_bytes(), b.as_bytes())

    def test_blob_layout(self) -> None:
        obj = GitObject("ab", b"xy", BlobMetadata())
        self.assertEqual(b"\x08ab\x08xy\x03", obj.as_bytes())

    def test_unknown_kind(self) -> None:
        self.assertRaises(DecodeError, GitObject.from_bytes, b"\x08ab\x08xy\x07")

    def test_truncated(self) -> None:
        data = GitObject("a" * 40, b"payload", TagMetadata("b" * 40)).as_bytes()
        self.assertRaises(DecodeError, GitObject.from_bytes, data[:-1])

    def test_trailing_data(self) -> None:
        data = GitObject("ab", b"xy", BlobMetadata()).as_bytes()
        self.assertRaises(DecodeError, GitObject.from_bytes, data + b"\x00")
