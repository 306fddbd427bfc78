# remote_helper.py -- git remote helper for ledger remotes
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

"""git remote helper for ledger remotes.

git runs ``git-remote-ledger <remote> <url>`` for remotes with a
``ledger://`` URL (or ``ledger::`` prefix) and talks to it over stdin and
stdout using the line protocol described in gitremote-helpers(7). This
module translates the ``list``, ``fetch`` and ``push`` commands into calls on
:class:`gitledger.repodata.RepoData`.
"""

__all__ = [
    "RemoteHelper",
    "main",
]

import argparse
import os
import sys
from collections.abc import Callable, Iterator, Sequence
from typing import TextIO

from dulwich.errors import NotGitRepository
from dulwich.repo import BaseRepo, Repo

from .blobstore import BlobStoreError, open_blob_store
from .config import RemoteSettings, load_settings
from .errors import GitLedgerError, PullNeededError
from .ledger import DiskLedger, LedgerError
from .log_utils import default_logging_config, getLogger
from .remote import LedgerRemote
from .repodata import RepoData

logger = getLogger(__name__)

_PUSH_ERRORS = (GitLedgerError, BlobStoreError, LedgerError, KeyError)


def _one_line(error: BaseException) -> str:
    if isinstance(error, KeyError) and error.args:
        arg = error.args[0]
        if isinstance(arg, bytes):
            arg = arg.decode("utf-8", "replace")
        return f"no such ref {arg}"
    return " ".join(str(error).split())


class RemoteHelper:
    """Serves the remote helper protocol for one remote."""

    def __init__(
        self,
        repo: BaseRepo,
        remote: LedgerRemote,
        index: RepoData,
        settings: RemoteSettings,
    ) -> None:
        self.repo = repo
        self.remote = remote
        self.index = index
        self.settings = settings
        # Records minted for objects now listed in the index but not yet in
        # the container.
        self._pending_records: list[int] = []
        self.commands: dict[str, Callable[[list[str], Iterator[str], TextIO], None]] = {
            "capabilities": self.cmd_capabilities,
            "list": self.cmd_list,
            "fetch": self.cmd_fetch,
            "push": self.cmd_push,
            "option": self.cmd_option,
        }

    @classmethod
    def open(cls, repo: BaseRepo, settings: RemoteSettings) -> "RemoteHelper":
        """Connect to the remote described by settings and load its index."""
        remote = LedgerRemote(
            open_blob_store(settings.blob_store_url),
            DiskLedger(settings.ledger_path),
            settings.container_id,
        )
        return cls(repo, remote, RepoData.from_remote(remote), settings)

    def run(self, inp: TextIO, out: TextIO) -> None:
        """Process commands until git closes stdin or sends a blank line."""
        lines = (line.rstrip("\n") for line in inp)
        for line in lines:
            if not line:
                break
            name, *args = line.split(" ")
            logger.debug("Remote helper command: %s", line)
            try:
                handler = self.commands[name]
            except KeyError:
                raise GitLedgerError(f"Unknown remote helper command {name!r}") from None
            handler(args, lines, out)
            out.flush()

    def cmd_capabilities(self, args: list[str], lines: Iterator[str], out: TextIO) -> None:
        out.write("option\nfetch\npush\n\n")

    def cmd_option(self, args: list[str], lines: Iterator[str], out: TextIO) -> None:
        out.write("unsupported\n")

    def cmd_list(self, args: list[str], lines: Iterator[str], out: TextIO) -> None:
        refs = self.index.refs
        for name, object_id in sorted(refs.items()):
            out.write(f"{object_id} {name}\n")
        for head in ("refs/heads/main", "refs/heads/master"):
            if head in refs:
                out.write(f"@{head} HEAD\n")
                break
        out.write("\n")

    @staticmethod
    def _batch(first: list[str], lines: Iterator[str], command: str) -> list[list[str]]:
        # git sends a batch of commands of the same kind ended by a blank line.
        batch = [first]
        for line in lines:
            if not line:
                break
            name, *args = line.split(" ")
            if name != command:
                raise GitLedgerError(f"Unexpected {name!r} in a {command} batch")
            batch.append(args)
        return batch

    def cmd_fetch(self, args: list[str], lines: Iterator[str], out: TextIO) -> None:
        for object_id, ref_name, *_ in self._batch(args, lines, "fetch"):
            self.index.fetch_to_ref(
                object_id,
                ref_name,
                self.repo,
                self.remote,
                stop_at_submodule=self.settings.stop_at_submodule,
            )
        out.write("\n")

    def cmd_push(self, args: list[str], lines: Iterator[str], out: TextIO) -> None:
        results: list[tuple[str, str | None]] = []
        for (refspec, *_) in self._batch(args, lines, "push"):
            force = refspec.startswith("+")
            src, dst = refspec.lstrip("+").split(":", 1)
            try:
                record_ids = self.index.push_ref(
                    src,
                    dst,
                    force,
                    self.repo,
                    self.remote,
                    jobs=self.settings.mint_jobs,
                    stop_at_submodule=self.settings.stop_at_submodule,
                )
            except PullNeededError as e:
                logger.error("%s", e)
                results.append((dst, "fetch first"))
            except _PUSH_ERRORS as e:
                logger.error("Pushing %s failed: %s", dst, e)
                self._pending_records.extend(getattr(e, "record_ids", ()))
                results.append((dst, _one_line(e)))
            else:
                self._pending_records.extend(record_ids)
                results.append((dst, None))

        if any(reason is None for _, reason in results):
            try:
                self._publish()
            except _PUSH_ERRORS as e:
                logger.error("Publishing the index failed: %s", e)
                results = [
                    (dst, reason if reason is not None else _one_line(e))
                    for dst, reason in results
                ]

        for dst, reason in results:
            if reason is None:
                out.write(f"ok {dst}\n")
            else:
                out.write(f"error {dst} {reason}\n")
        out.write("\n")

    def _publish(self) -> None:
        result = self.index.publish(self.remote)
        remove = [] if result.old_record_id is None else [result.old_record_id]
        self.remote.update_record_set(
            add=[*self._pending_records, result.new_record_id], remove=remove
        )
        self._pending_records.clear()
        logger.info(
            "Published index record %d%s",
            result.new_record_id,
            "" if result.old_record_id is None else f", retired {result.old_record_id}",
        )


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point for git-remote-ledger.

    Args:
      argv: Command line arguments (defaults to sys.argv[1:])
    Returns: exit code
    """
    if argv is None:
        argv = sys.argv[1:]

    parser = argparse.ArgumentParser(
        prog="git-remote-ledger",
        description="git remote helper for ledger-backed remotes",
    )
    parser.add_argument("remote", help="Name of the remote, or its URL")
    parser.add_argument("url", nargs="?", help="URL of the remote")
    args = parser.parse_args(argv)

    default_logging_config()

    url = args.url if args.url is not None else args.remote
    remote_name = None if args.remote == url else args.remote
    try:
        with Repo(os.environ.get("GIT_DIR", ".")) as repo:
            settings = load_settings(
                repo.get_config_stack(), remote_name, url, repo.controldir()
            )
            helper = RemoteHelper.open(repo, settings)
            helper.run(sys.stdin, sys.stdout)
    except (
        GitLedgerError,
        BlobStoreError,
        LedgerError,
        NotGitRepository,
        ValueError,
    ) as e:
        logger.error("fatal: %s", e)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
