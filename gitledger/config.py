# config.py -- Settings for ledger remotes
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

"""Settings for ledger remotes.

Settings come from the git configuration of the local repository. Values in
``remote.<name>`` override the ones in the ``ledger`` section::

    [ledger]
        blobStore = ipfs+http://127.0.0.1:5001
        path = /srv/ledger/ledger.json
        mintJobs = 4
        stopAtSubmodule = false

    [remote "origin"]
        url = ledger://42
        ledgerBlobStore = file:///srv/ledger/blobs
"""

__all__ = [
    "RemoteSettings",
    "load_settings",
    "parse_remote_url",
]

import os
from dataclasses import dataclass

from dulwich.config import Config

URL_SCHEME = "ledger"


@dataclass
class RemoteSettings:
    """How to reach one ledger remote."""

    container_id: int
    blob_store_url: str
    ledger_path: str
    mint_jobs: int = 1
    stop_at_submodule: bool = False


def parse_remote_url(url: str) -> int:
    """Extract the container id from a remote URL.

    Git passes either the full ``ledger://<id>`` URL or, for remotes written
    as ``ledger::<id>``, just the part after the double colon.
    """
    prefix = f"{URL_SCHEME}://"
    address = url[len(prefix) :] if url.startswith(prefix) else url
    try:
        return int(address.strip("/"))
    except ValueError:
        raise ValueError(
            f"Invalid ledger remote URL {url!r}: expected {prefix}<container-id>"
        ) from None


def _find(
    config: Config, remote_name: str | None, name: str
) -> tuple[tuple[bytes, ...], bytes] | None:
    # remote.<name>.ledgerFoo wins over ledger.foo.
    candidates: list[tuple[tuple[bytes, ...], bytes]] = []
    if remote_name is not None:
        candidates.append(
            (
                (b"remote", remote_name.encode("utf-8")),
                f"ledger{name[0].upper()}{name[1:]}".encode("ascii"),
            )
        )
    candidates.append(((b"ledger",), name.encode("ascii")))
    for section, key in candidates:
        try:
            config.get(section, key)
        except KeyError:
            continue
        return section, key
    return None


def _lookup(config: Config, remote_name: str | None, name: str) -> bytes | None:
    found = _find(config, remote_name, name)
    if found is None:
        return None
    return config.get(*found)


def load_settings(
    config: Config, remote_name: str | None, url: str, controldir: str
) -> RemoteSettings:
    """Build the settings for a remote.

    Args:
      config: Git configuration of the local repository
      remote_name: Name of the remote, if it has one
      url: Remote URL as passed by git
      controldir: The repository's git directory, for default locations
    Raises:
      ValueError: for malformed URLs or setting values
    """
    container_id = parse_remote_url(url)
    base = os.path.join(os.path.abspath(controldir), "ledger")

    blob_store = _lookup(config, remote_name, "blobStore")
    ledger_path = _lookup(config, remote_name, "path")
    settings = RemoteSettings(
        container_id=container_id,
        blob_store_url=(
            blob_store.decode("utf-8")
            if blob_store is not None
            else "file://" + os.path.join(base, "blobs")
        ),
        ledger_path=(
            ledger_path.decode("utf-8")
            if ledger_path is not None
            else os.path.join(base, "ledger.json")
        ),
    )

    jobs = _lookup(config, remote_name, "mintJobs")
    if jobs is not None:
        try:
            settings.mint_jobs = int(jobs)
        except ValueError:
            raise ValueError(f"ledger.mintJobs is not a number: {jobs!r}") from None
        if settings.mint_jobs < 1:
            raise ValueError(f"ledger.mintJobs must be at least 1: {jobs!r}")

    found = _find(config, remote_name, "stopAtSubmodule")
    if found is not None:
        section, key = found
        try:
            settings.stop_at_submodule = config.get_boolean(section, key)
        except ValueError as e:
            raise ValueError(
                f"{b'.'.join((*section, key)).decode('utf-8')}: {e}"
            ) from None

    return settings
