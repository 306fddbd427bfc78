# objects.py -- Portable representation of git objects
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

"""Portable representation of git objects.

A :class:`GitObject` carries the raw body of a commit, tree, tag or blob
together with the ids it references, so that the object graph can be walked
on the remote side without reconstructing the objects themselves.
"""

__all__ = [
    "BlobMetadata",
    "CommitMetadata",
    "GitObject",
    "Metadata",
    "TagMetadata",
    "TreeMetadata",
]

import zlib
from collections.abc import Iterable
from dataclasses import dataclass
from typing import ClassVar

from dulwich.errors import ChecksumMismatch, ObjectFormatException
from dulwich.object_store import BaseObjectStore
from dulwich.objects import Blob, Commit, ShaFile, Tag, Tree

from .encoding import (
    check_consumed,
    decode_bytes,
    decode_str,
    decode_str_set,
    decode_u8,
    encode_bytes,
    encode_str,
    encode_str_set,
    encode_u8,
)
from .errors import DecodeError, ObjectReadError, UnsupportedKind

_READ_ERRORS = (KeyError, OSError, ObjectFormatException, ChecksumMismatch, zlib.error)


@dataclass(frozen=True)
class CommitMetadata:
    """Parents and root tree of a commit."""

    parent_ids: frozenset[str]
    tree_id: str

    variant: ClassVar[int] = 0
    type_num: ClassVar[int] = Commit.type_num
    type_name: ClassVar[str] = "commit"

    def __post_init__(self) -> None:
        object.__setattr__(self, "parent_ids", frozenset(self.parent_ids))

    def references(self) -> list[str]:
        return [self.tree_id, *sorted(self.parent_ids)]

    def _encode_fields(self) -> bytes:
        return encode_str_set(self.parent_ids) + encode_str(self.tree_id)

    @classmethod
    def _decode_fields(cls, data: bytes, offset: int) -> tuple["CommitMetadata", int]:
        parent_ids, offset = decode_str_set(data, offset)
        tree_id, offset = decode_str(data, offset)
        return cls(parent_ids, tree_id), offset


@dataclass(frozen=True)
class TagMetadata:
    """Object an annotated tag points at."""

    target_id: str

    variant: ClassVar[int] = 1
    type_num: ClassVar[int] = Tag.type_num
    type_name: ClassVar[str] = "tag"

    def references(self) -> list[str]:
        return [self.target_id]

    def _encode_fields(self) -> bytes:
        return encode_str(self.target_id)

    @classmethod
    def _decode_fields(cls, data: bytes, offset: int) -> tuple["TagMetadata", int]:
        target_id, offset = decode_str(data, offset)
        return cls(target_id), offset


@dataclass(frozen=True)
class TreeMetadata:
    """Ids of all entries of a tree, including submodule commits."""

    entry_ids: frozenset[str]

    variant: ClassVar[int] = 2
    type_num: ClassVar[int] = Tree.type_num
    type_name: ClassVar[str] = "tree"

    def __post_init__(self) -> None:
        object.__setattr__(self, "entry_ids", frozenset(self.entry_ids))

    def references(self) -> list[str]:
        return sorted(self.entry_ids)

    def _encode_fields(self) -> bytes:
        return encode_str_set(self.entry_ids)

    @classmethod
    def _decode_fields(cls, data: bytes, offset: int) -> tuple["TreeMetadata", int]:
        entry_ids, offset = decode_str_set(data, offset)
        return cls(entry_ids), offset


@dataclass(frozen=True)
class BlobMetadata:
    """Blobs reference nothing; the payload is the raw body."""

    variant: ClassVar[int] = 3
    type_num: ClassVar[int] = Blob.type_num
    type_name: ClassVar[str] = "blob"

    def references(self) -> list[str]:
        return []

    def _encode_fields(self) -> bytes:
        return b""

    @classmethod
    def _decode_fields(cls, data: bytes, offset: int) -> tuple["BlobMetadata", int]:
        return cls(), offset


Metadata = CommitMetadata | TagMetadata | TreeMetadata | BlobMetadata

_METADATA_VARIANTS: dict[int, type[Metadata]] = {
    cls.variant: cls for cls in (CommitMetadata, TagMetadata, TreeMetadata, BlobMetadata)
}


def _hex(sha: bytes) -> str:
    return sha.decode("ascii")


@dataclass(frozen=True)
class GitObject:
    """A single git object in transportable form.

    Attributes:
      object_id: Hex id of the object as computed by git
      raw_bytes: Header-free body as stored in the object database
      metadata: Kind-specific references to other objects
    """

    object_id: str
    raw_bytes: bytes
    metadata: Metadata

    @property
    def type_num(self) -> int:
        return self.metadata.type_num

    @property
    def type_name(self) -> str:
        return self.metadata.type_name

    @staticmethod
    def _read_raw(object_store: BaseObjectStore, obj: ShaFile) -> bytes:
        try:
            type_num, raw = object_store.get_raw(obj.id)
        except _READ_ERRORS as e:
            raise ObjectReadError(_hex(obj.id), str(e)) from e
        if type_num != obj.type_num:
            raise ObjectReadError(
                _hex(obj.id),
                f"object database reports type {type_num}, expected {obj.type_num}",
            )
        return raw

    @classmethod
    def from_blob(cls, blob: Blob, object_store: BaseObjectStore) -> "GitObject":
        return cls(_hex(blob.id), cls._read_raw(object_store, blob), BlobMetadata())

    @classmethod
    def from_commit(cls, commit: Commit, object_store: BaseObjectStore) -> "GitObject":
        raw = cls._read_raw(object_store, commit)
        metadata = CommitMetadata(
            parent_ids=frozenset(_hex(p) for p in commit.parents),
            tree_id=_hex(commit.tree),
        )
        return cls(_hex(commit.id), raw, metadata)

    @classmethod
    def from_tag(cls, tag: Tag, object_store: BaseObjectStore) -> "GitObject":
        raw = cls._read_raw(object_store, tag)
        _, target = tag.object
        return cls(_hex(tag.id), raw, TagMetadata(_hex(target)))

    @classmethod
    def from_tree(cls, tree: Tree, object_store: BaseObjectStore) -> "GitObject":
        raw = cls._read_raw(object_store, tree)
        entry_ids = frozenset(_hex(entry.sha) for entry in tree.iteritems())
        return cls(_hex(tree.id), raw, TreeMetadata(entry_ids))

    @classmethod
    def from_shafile(cls, obj: ShaFile, object_store: BaseObjectStore) -> "GitObject":
        """Build a GitObject from any of the four dulwich object types.

        Args:
          obj: Commit, Tree, Tag or Blob
          object_store: Store the raw body is read from
        Raises:
          UnsupportedKind: for any other object type
          ObjectReadError: if the raw body cannot be read
        """
        if isinstance(obj, Commit):
            return cls.from_commit(obj, object_store)
        elif isinstance(obj, Tree):
            return cls.from_tree(obj, object_store)
        elif isinstance(obj, Tag):
            return cls.from_tag(obj, object_store)
        elif isinstance(obj, Blob):
            return cls.from_blob(obj, object_store)
        raise UnsupportedKind(_hex(obj.id), getattr(obj, "type_name", type(obj)))

    @classmethod
    def from_store(cls, object_store: BaseObjectStore, object_id: str) -> "GitObject":
        """Read an object by hex id and build a GitObject from it."""
        try:
            obj = object_store[object_id.encode("ascii")]
        except _READ_ERRORS as e:
            raise ObjectReadError(object_id, str(e)) from e
        return cls.from_shafile(obj, object_store)

    def as_shafile(self) -> ShaFile:
        """Rebuild the dulwich object from the raw body.

        The id of the returned object is recomputed from the content, so it
        only equals ``object_id`` if the body is intact.
        """
        return ShaFile.from_raw_string(self.type_num, self.raw_bytes)

    def as_bytes(self) -> bytes:
        """Serialize to the canonical encoding."""
        return b"".join(
            [
                encode_str(self.object_id),
                encode_bytes(self.raw_bytes),
                encode_u8(self.metadata.variant),
                self.metadata._encode_fields(),
            ]
        )

    @classmethod
    def from_bytes(cls, data: bytes) -> "GitObject":
        """Parse the canonical encoding.

        Raises:
          DecodeError: if the data is truncated, has trailing bytes or an
            unknown kind tag
        """
        object_id, offset = decode_str(data, 0)
        raw_bytes, offset = decode_bytes(data, offset)
        variant, offset = decode_u8(data, offset)
        try:
            metadata_cls = _METADATA_VARIANTS[variant]
        except KeyError as e:
            raise DecodeError(f"unknown object kind tag {variant}") from e
        metadata, offset = metadata_cls._decode_fields(data, offset)
        check_consumed(data, offset)
        return cls(object_id, raw_bytes, metadata)

    def references(self) -> Iterable[str]:
        """Ids of the objects this object depends on."""
        return self.metadata.references()

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.type_name} {self.object_id}>"
