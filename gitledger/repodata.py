# repodata.py -- The remote index and the push/fetch engine
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

"""The remote index and the push/fetch engine.

The index (:class:`RepoData`) records which refs a remote has and which
objects are known to be stored on it. It only ever grows: pushes append the
objects they upload, and every change is published as a brand new ledger
record rather than by rewriting the previous one.

Pushing walks the *local* object graph, stopping at anything the index
already lists. Fetching walks the *remote* metadata, stopping at anything
already present locally.
"""

__all__ = [
    "SUBMODULE_TIP_MARKER",
    "IndexEntry",
    "PublishResult",
    "PushPlan",
    "RepoData",
]

import heapq
from collections.abc import Iterable
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from typing import NamedTuple

from dulwich.errors import ObjectFormatException
from dulwich.object_store import BaseObjectStore
from dulwich.objects import S_ISGITLINK, Blob, Commit, ShaFile, Tag, Tree, valid_hexsha
from dulwich.repo import BaseRepo

from .encoding import (
    check_consumed,
    decode_sequence,
    decode_str,
    decode_str_map,
    decode_u8,
    encode_sequence,
    encode_str,
    encode_str_map,
    encode_u8,
)
from .errors import (
    ConcurrentPublishConflict,
    DecodeError,
    IntegrityError,
    ObjectNotIndexed,
    ObjectReadError,
    PullNeededError,
    UnsupportedKind,
)
from .log_utils import getLogger
from .objects import GitObject, TreeMetadata
from .remote import INDEX_KEY, LedgerRemote

logger = getLogger(__name__)

# Reserved label for submodule commits, which git obtains on its own.
SUBMODULE_TIP_MARKER = "submodule-tip"

_ENTRY_OBJECT = 0
_ENTRY_SUBMODULE_TIP = 1


class IndexEntry(NamedTuple):
    """An object listed in the index.

    Submodule tips are the commits gitlink tree entries point at; they are
    recorded but never uploaded.
    """

    object_id: str
    submodule_tip: bool = False

    def __str__(self) -> str:
        if self.submodule_tip:
            return f"{SUBMODULE_TIP_MARKER} {self.object_id}"
        return self.object_id


class PushPlan(NamedTuple):
    """Objects to upload for a push, plus the submodule tips encountered."""

    objects: frozenset[str]
    submodules: frozenset[str]


class PublishResult(NamedTuple):
    new_record_id: int
    old_record_id: int | None


def _check_object_id(object_id: str) -> None:
    if (
        not isinstance(object_id, str)
        or not object_id.isascii()
        or not valid_hexsha(object_id.encode("ascii"))
    ):
        raise ValueError(f"{object_id!r} is not a valid object id")


def _read_local(object_store: BaseObjectStore, object_id: str) -> ShaFile:
    try:
        return object_store[object_id.encode("ascii")]
    except (KeyError, OSError, ObjectFormatException) as e:
        raise ObjectReadError(object_id, str(e)) from e


def _write_fetched(object_store: BaseObjectStore, git_object: GitObject) -> None:
    object_id = git_object.object_id
    try:
        obj = git_object.as_shafile()
        written_id = obj.id.decode("ascii")
    except ObjectFormatException as e:
        raise IntegrityError(object_id, extra=str(e)) from e
    if written_id != object_id:
        raise IntegrityError(object_id, written_id)
    object_store.add_object(obj)
    logger.debug("Fetched object %s", object_id)


class RepoData:
    """The remote-visible record of refs and stored objects.

    Attributes:
      refs: Mapping of ref names to object ids
      objects: Append-only list of index entries
      record_id: Ledger record this index was loaded from or last published
        as, None for a remote without an index yet
    """

    def __init__(
        self,
        refs: dict[str, str] | None = None,
        objects: Iterable[IndexEntry | str] = (),
        record_id: int | None = None,
    ) -> None:
        self.refs: dict[str, str] = dict(refs or {})
        self.objects: list[IndexEntry] = []
        self._entries: dict[str, IndexEntry] = {}
        self._tips: set[str] = set()
        self.record_id = record_id
        for entry in objects:
            if isinstance(entry, str):
                entry = IndexEntry(entry)
            self._append(entry)

    def __repr__(self) -> str:
        return (
            f"<{type(self).__name__} refs={len(self.refs)} "
            f"objects={len(self.objects)} record_id={self.record_id}>"
        )

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, RepoData):
            return NotImplemented
        return self.refs == other.refs and self.objects == other.objects

    def __contains__(self, object_id: object) -> bool:
        return object_id in self._entries

    def lookup(self, object_id: str) -> IndexEntry:
        """Return the entry listing object_id as stored remotely.

        Raises:
          KeyError: if the id is not listed as a stored object
        """
        return self._entries[object_id]

    def _append(self, entry: IndexEntry) -> bool:
        _check_object_id(entry.object_id)
        # A commit can be both a submodule tip and pushed in its own right.
        if entry.submodule_tip:
            if entry.object_id in self._tips:
                return False
            self._tips.add(entry.object_id)
        else:
            if entry.object_id in self._entries:
                return False
            self._entries[entry.object_id] = entry
        self.objects.append(entry)
        return True

    def add_object(self, object_id: str) -> bool:
        """List an object as stored remotely.

        Returns: False if the object was already listed as stored
        """
        return self._append(IndexEntry(object_id))

    def add_submodule_tip(self, object_id: str) -> bool:
        """List a submodule commit, without any stored payload.

        Returns: False if the id was already listed as a submodule tip
        """
        return self._append(IndexEntry(object_id, submodule_tip=True))

    def is_submodule_tip(self, object_id: str) -> bool:
        return object_id in self._tips

    def submodule_tips(self) -> list[str]:
        return [entry.object_id for entry in self.objects if entry.submodule_tip]

    def as_bytes(self) -> bytes:
        """Serialize to the canonical encoding."""

        def encode_entry(entry: IndexEntry) -> bytes:
            tag = _ENTRY_SUBMODULE_TIP if entry.submodule_tip else _ENTRY_OBJECT
            return encode_u8(tag) + encode_str(entry.object_id)

        return encode_str_map(self.refs) + encode_sequence(self.objects, encode_entry)

    @classmethod
    def from_bytes(cls, data: bytes, record_id: int | None = None) -> "RepoData":
        """Parse the canonical encoding.

        Raises:
          DecodeError: if the data is malformed or lists an invalid id
        """

        def decode_entry(data: bytes, offset: int) -> tuple[IndexEntry, int]:
            tag, offset = decode_u8(data, offset)
            if tag not in (_ENTRY_OBJECT, _ENTRY_SUBMODULE_TIP):
                raise DecodeError(f"unknown index entry tag {tag}")
            object_id, offset = decode_str(data, offset)
            return IndexEntry(object_id, tag == _ENTRY_SUBMODULE_TIP), offset

        refs, offset = decode_str_map(data, 0)
        entries, offset = decode_sequence(data, offset, decode_entry)
        check_consumed(data, offset)
        try:
            return cls(refs, entries, record_id=record_id)
        except ValueError as e:
            raise DecodeError(str(e)) from e

    @classmethod
    def from_remote(cls, remote: LedgerRemote) -> "RepoData":
        """Load the most recently published index of a remote.

        A remote without an index record yields an empty index.
        """
        record = remote.find_index_record()
        if record is None:
            logger.debug("No index in container %s yet", remote.container_id)
            return cls()
        logger.debug("Loading index from record %d", record.record_id)
        return cls.from_bytes(remote.get_blob(record), record_id=record.record_id)

    def enumerate_for_push(
        self, object_store: BaseObjectStore, root_id: str
    ) -> PushPlan:
        """Find the objects that have to be uploaded to make root_id available.

        Anything already listed in the index is assumed to be stored
        remotely, along with everything it depends on.

        Args:
          object_store: Local object store to walk
          root_id: Id of the commit or tag to push
        Returns: the objects to upload and the submodule tips encountered
        Raises:
          ObjectReadError: if a local object can not be read
          UnsupportedKind: if an object is not a commit, tree, tag or blob
        """
        todo: set[str] = set()
        submodules: set[str] = set()
        stack = [root_id]

        while stack:
            object_id = stack.pop()
            if object_id in self:
                logger.debug("Object %s already in the index", object_id)
                continue
            if object_id in todo:
                continue

            obj = _read_local(object_store, object_id)
            todo.add(object_id)

            if isinstance(obj, Commit):
                logger.debug("[%d] Counting commit %s", len(todo), object_id)
                stack.append(obj.tree.decode("ascii"))
                stack.extend(parent.decode("ascii") for parent in obj.parents)
            elif isinstance(obj, Tree):
                logger.debug("[%d] Counting tree %s", len(todo), object_id)
                for entry in obj.iteritems():
                    entry_id = entry.sha.decode("ascii")
                    if S_ISGITLINK(entry.mode):
                        logger.debug("Skipping submodule at %s", entry_id)
                        submodules.add(entry_id)
                        continue
                    stack.append(entry_id)
            elif isinstance(obj, Tag):
                logger.debug("[%d] Counting tag %s", len(todo), object_id)
                stack.append(obj.object[1].decode("ascii"))
            elif isinstance(obj, Blob):
                logger.debug("[%d] Counting blob %s", len(todo), object_id)
            else:
                raise UnsupportedKind(object_id, obj.type_name)

        return PushPlan(frozenset(todo), frozenset(submodules))

    def enumerate_for_fetch(
        self,
        object_store: BaseObjectStore,
        remote: LedgerRemote,
        target_id: str,
        *,
        stop_at_submodule: bool = False,
    ) -> set[str]:
        """Find the objects that have to be downloaded to have target_id locally.

        The walk follows the metadata stored on the remote, so objects that
        are not yet local are never read from the local store. Tree entries
        listed as submodule tips are left to git.

        Args:
          object_store: Local object store, only checked for presence
          remote: Remote to read object metadata from
          target_id: Id of the object to fetch
          stop_at_submodule: Abandon the whole walk at the first submodule tip
            instead of skipping just that branch
        Returns: ids of the objects to download
        Raises:
          ObjectNotIndexed: if a needed object is not listed in the index
        """
        return set(
            self._walk_remote(
                object_store, remote, target_id, stop_at_submodule=stop_at_submodule
            )
        )

    def _walk_remote(
        self,
        object_store: BaseObjectStore,
        remote: LedgerRemote,
        target_id: str,
        *,
        stop_at_submodule: bool = False,
    ) -> dict[str, GitObject]:
        todo: dict[str, GitObject] = {}
        # Ids to visit, each with whether a tree entry points at it.
        stack = [(target_id, False)]

        while stack:
            object_id, from_tree = stack.pop()
            if object_id.encode("ascii") in object_store:
                logger.debug("Object %s already present locally", object_id)
                continue
            if object_id in todo:
                continue

            if from_tree and self.is_submodule_tip(object_id):
                logger.debug("Omitting submodule %s", object_id)
                if stop_at_submodule:
                    break
                continue
            if object_id not in self:
                raise ObjectNotIndexed(object_id)

            git_object = remote.get_object(object_id)
            todo[object_id] = git_object
            is_tree = isinstance(git_object.metadata, TreeMetadata)
            stack.extend((ref, is_tree) for ref in git_object.references())

        return todo

    def push_ref(
        self,
        src_ref: str,
        dst_ref: str,
        force: bool,
        repo: BaseRepo,
        remote: LedgerRemote,
        *,
        jobs: int = 1,
        stop_at_submodule: bool = False,
    ) -> list[int]:
        """Push a local ref to the remote, or delete a remote ref.

        The index is updated in memory only; call :meth:`publish` afterwards.

        Args:
          src_ref: Local ref to push; empty to delete dst_ref
          dst_ref: Remote ref to update
          force: Skip the check for remote history missing locally
          repo: Local repository
          remote: Remote to upload to
          jobs: Maximum number of mints in flight
          stop_at_submodule: Passed on to the missing history check
        Returns: ids of the ledger records minted for the uploaded objects
        Raises:
          KeyError: if src_ref does not exist locally
          PullNeededError: if dst_ref has history not present locally
        """
        if not src_ref:
            logger.debug("Removing ref %s from index", dst_ref)
            if self.refs.pop(dst_ref, None) is None:
                logger.debug(
                    "Nothing to delete, ref %s not part of the index ref set", dst_ref
                )
            return []

        obj = self._resolve_local_ref(repo, src_ref)
        object_id = obj.id.decode("ascii")
        logger.debug("%s dereferenced to %s %s", src_ref, obj.type_name, object_id)

        if force:
            logger.info("This push will be forced")
        else:
            logger.info("Checking for work ahead of us...")
            dst_id = self.refs.get(dst_ref)
            if dst_id is not None:
                try:
                    missing = self.enumerate_for_fetch(
                        repo.object_store,
                        remote,
                        dst_id,
                        stop_at_submodule=stop_at_submodule,
                    )
                except ObjectNotIndexed as e:
                    # Remote history we can not even enumerate is missing too.
                    raise PullNeededError(dst_ref, {e.object_id}) from e
                if missing:
                    logger.debug("Missing objects: %s", sorted(missing))
                    raise PullNeededError(dst_ref, missing)

        plan = self.enumerate_for_push(repo.object_store, object_id)
        record_ids = self.push_git_objects(
            plan.objects, repo.object_store, remote, jobs=jobs
        )

        for submodule_id in sorted(plan.submodules):
            self.add_submodule_tip(submodule_id)

        self.refs[dst_ref] = object_id
        return record_ids

    @staticmethod
    def _resolve_local_ref(repo: BaseRepo, ref: str) -> Commit | Tag:
        # Annotated tags are pushed as tags, anything else as its commit.
        sha = repo.refs[ref.encode("utf-8")]
        obj = _read_local(repo.object_store, sha.decode("ascii"))
        if isinstance(obj, (Tag, Commit)):
            return obj
        raise UnsupportedKind(sha.decode("ascii"), obj.type_name)

    def push_git_objects(
        self,
        object_ids: Iterable[str],
        object_store: BaseObjectStore,
        remote: LedgerRemote,
        *,
        jobs: int = 1,
    ) -> list[int]:
        """Upload objects and list them in the index.

        At most ``jobs`` mints are in flight at any time. An object is only
        added to the index once its mint is confirmed, and only submitted
        once everything it references among object_ids is listed, so the
        index never lists an object whose dependencies are missing.

        After a failure no further mints are started; the ones already in
        flight are waited for and the first error is raised, carrying the
        ids of the records that were minted before it as its
        ``record_ids`` attribute.

        Returns: ids of the minted ledger records
        Raises:
          ObjectReadError: if a local object can not be read
          UnsupportedKind: if an object is not a commit, tree, tag or blob
        """
        if jobs < 1:
            raise ValueError(f"jobs must be at least 1, not {jobs}")
        todo = {oid for oid in object_ids if oid not in self}
        blocking: dict[str, int] = {}
        dependents: dict[str, list[str]] = {oid: [] for oid in todo}
        for object_id in todo:
            needs = set(GitObject.from_store(object_store, object_id).references())
            needs &= todo
            needs.discard(object_id)
            blocking[object_id] = len(needs)
            for dependency in needs:
                dependents[dependency].append(object_id)
        ready = sorted(oid for oid, count in blocking.items() if count == 0)
        total = len(todo)
        logger.info("Minting %d objects", total)

        record_ids: list[int] = []
        in_flight: dict[Future[int], GitObject] = {}
        error: BaseException | None = None

        with ThreadPoolExecutor(max_workers=jobs) as executor:
            while True:
                while error is None and ready and len(in_flight) < jobs:
                    object_id = heapq.heappop(ready)
                    try:
                        git_object = GitObject.from_store(object_store, object_id)
                    except (ObjectReadError, UnsupportedKind) as e:
                        error = e
                        break
                    in_flight[executor.submit(remote.mint_object, git_object)] = (
                        git_object
                    )
                if not in_flight:
                    break
                done, _ = wait(in_flight, return_when=FIRST_COMPLETED)
                for future in done:
                    git_object = in_flight.pop(future)
                    try:
                        record_id = future.result()
                    except Exception as e:
                        if error is None:
                            error = e
                        continue
                    self.add_object(git_object.object_id)
                    record_ids.append(record_id)
                    logger.info(
                        "Minted %s %s on the ledger with record id %d",
                        git_object.type_name,
                        git_object.object_id,
                        record_id,
                    )
                    logger.debug("[%d/%d] uploaded", len(record_ids), total)
                    for dependent in dependents[git_object.object_id]:
                        blocking[dependent] -= 1
                        if not blocking[dependent]:
                            heapq.heappush(ready, dependent)

        if error is not None:
            # The confirmed objects stay listed in the index.
            error.record_ids = record_ids  # type: ignore[attr-defined]
            raise error
        return record_ids

    def fetch_git_objects(
        self,
        object_ids: Iterable[str],
        object_store: BaseObjectStore,
        remote: LedgerRemote,
    ) -> None:
        """Download objects from the remote into the local object store.

        Each object is rebuilt and rehashed before it is written; an object
        whose content does not hash to the id it was fetched as is never
        written.

        Raises:
          ObjectNotIndexed: if an id is not listed in the index
          IntegrityError: if fetched content does not match its id
        """
        object_ids = sorted(object_ids)
        for i, object_id in enumerate(object_ids):
            logger.debug("[%d/%d] Fetching object %s", i + 1, len(object_ids), object_id)
            if object_id.encode("ascii") in object_store:
                logger.debug("Object %s already present locally", object_id)
                continue
            if object_id not in self:
                raise ObjectNotIndexed(object_id)
            _write_fetched(object_store, remote.get_object(object_id))

    def fetch_to_ref(
        self,
        object_id: str,
        ref_name: str,
        repo: BaseRepo,
        remote: LedgerRemote,
        *,
        stop_at_submodule: bool = False,
    ) -> None:
        """Fetch object_id and everything it needs, then update ref_name.

        Only commits outside ``refs/tags`` get their local ref set; git sets
        tag refs itself.

        Raises:
          UnsupportedKind: if the fetched tip is not a commit or a tag
        """
        logger.debug("Fetching %s for %s", object_id, ref_name)
        missing = self._walk_remote(
            repo.object_store, remote, object_id, stop_at_submodule=stop_at_submodule
        )
        for i, missing_id in enumerate(sorted(missing)):
            logger.debug("[%d/%d] Storing object %s", i + 1, len(missing), missing_id)
            _write_fetched(repo.object_store, missing[missing_id])

        obj = _read_local(repo.object_store, object_id)
        if isinstance(obj, Commit):
            if ref_name.startswith("refs/tags"):
                logger.debug("Not setting ref for lightweight tag %s", ref_name)
            else:
                repo.refs.set_if_equals(
                    ref_name.encode("utf-8"),
                    None,
                    obj.id,
                    message=b"gitledger: fetch",
                )
        elif isinstance(obj, Tag):
            logger.debug("Not setting ref for tag %s", ref_name)
        else:
            raise UnsupportedKind(object_id, obj.type_name)
        logger.debug("Fetched %s for %s OK.", object_id, ref_name)

    def publish(self, remote: LedgerRemote) -> PublishResult:
        """Mint this index as the remote's new index record.

        The publish only goes ahead if the remote's current index record is
        still the one this index was loaded from (or last published as).
        Replacing the old record with the new one in the container is left
        to the caller.

        Returns: the new record id and the id of the record it supersedes
        Raises:
          ConcurrentPublishConflict: if someone else published in between
        """
        current = remote.find_index_record()
        current_id = None if current is None else current.record_id
        if current_id != self.record_id:
            raise ConcurrentPublishConflict(self.record_id, current_id)

        new_record_id = remote.mint(INDEX_KEY, self.as_bytes())
        logger.info("Minted index on the ledger with record id %d", new_record_id)
        self.record_id = new_record_id
        return PublishResult(new_record_id, current_id)
