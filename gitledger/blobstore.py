# blobstore.py -- Content-addressed blob stores
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

"""Content-addressed blob stores.

A blob store maps the bytes it is given to an address derived from those
bytes. The address is what gets registered on the ledger.
"""

__all__ = [
    "BlobNotFound",
    "BlobStore",
    "BlobStoreError",
    "DiskBlobStore",
    "IpfsBlobStore",
    "MemoryBlobStore",
    "open_blob_store",
]

import hashlib
import json
import os
import threading
from typing import TYPE_CHECKING
from urllib.parse import quote, urlparse

from dulwich.file import GitFile, ensure_dir_exists

from .log_utils import getLogger

if TYPE_CHECKING:
    import urllib3

logger = getLogger(__name__)


class BlobStoreError(Exception):
    """A blob store operation failed."""


class BlobNotFound(BlobStoreError, KeyError):
    """No blob is stored under the requested address."""

    def __init__(self, address: str) -> None:
        self.address = address
        BlobStoreError.__init__(self, f"No blob stored at {address}")

    def __str__(self) -> str:
        return BlobStoreError.__str__(self)


class BlobStore:
    """Interface for content-addressed blob storage."""

    def put(self, data: bytes) -> str:
        """Store data and return its content address."""
        raise NotImplementedError(self.put)

    def get(self, address: str) -> bytes:
        """Retrieve the data stored at an address.

        Raises:
          BlobNotFound: if nothing is stored at the address
        """
        raise NotImplementedError(self.get)

    def __contains__(self, address: str) -> bool:
        try:
            self.get(address)
        except BlobNotFound:
            return False
        return True


def _sha256_address(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


class MemoryBlobStore(BlobStore):
    """Blob store that keeps all blobs in memory."""

    def __init__(self) -> None:
        self._blobs: dict[str, bytes] = {}
        self._lock = threading.Lock()

    def put(self, data: bytes) -> str:
        address = _sha256_address(data)
        with self._lock:
            self._blobs[address] = bytes(data)
        return address

    def get(self, address: str) -> bytes:
        try:
            return self._blobs[address]
        except KeyError:
            raise BlobNotFound(address) from None

    def __contains__(self, address: str) -> bool:
        return address in self._blobs

    def __len__(self) -> int:
        return len(self._blobs)


class DiskBlobStore(BlobStore):
    """Blob store keeping one file per blob, fanned out like loose objects."""

    def __init__(self, path: str | os.PathLike[str]) -> None:
        self.path = os.fspath(path)

    def __repr__(self) -> str:
        return f"<{type(self).__name__}({self.path!r})>"

    def _blob_path(self, address: str) -> str:
        if len(address) < 3 or not all(c in "0123456789abcdef" for c in address):
            raise BlobNotFound(address)
        return os.path.join(self.path, address[:2], address[2:])

    def put(self, data: bytes) -> str:
        address = _sha256_address(data)
        path = self._blob_path(address)
        if os.path.exists(path):
            logger.debug("Blob %s already stored", address)
            return address
        ensure_dir_exists(os.path.dirname(path))
        try:
            with GitFile(path, "wb", mask=0o444) as f:
                f.write(data)
        except OSError as e:
            raise BlobStoreError(f"Unable to write blob {address}: {e}") from e
        return address

    def get(self, address: str) -> bytes:
        try:
            with open(self._blob_path(address), "rb") as f:
                return f.read()
        except FileNotFoundError:
            raise BlobNotFound(address) from None

    def __contains__(self, address: str) -> bool:
        try:
            return os.path.exists(self._blob_path(address))
        except BlobNotFound:
            return False


class IpfsBlobStore(BlobStore):
    """Blob store backed by the HTTP RPC API of an IPFS node."""

    def __init__(
        self,
        base_url: str = "http://127.0.0.1:5001",
        pool_manager: "urllib3.PoolManager | None" = None,
        timeout: float | None = None,
    ) -> None:
        """Initialize an IpfsBlobStore.

        Args:
          base_url: URL of the node's RPC endpoint
          pool_manager: Optional urllib3 PoolManager for the HTTP connections
          timeout: Timeout for HTTP requests in seconds
        """
        if pool_manager is None:
            import urllib3

            kwargs = {}
            if timeout is not None:
                kwargs["timeout"] = urllib3.Timeout(total=timeout)
            # Every RPC is a POST; adding content-addressed data is idempotent.
            pool_manager = urllib3.PoolManager(
                retries=urllib3.Retry(total=3, allowed_methods=None), **kwargs
            )
        self.base_url = base_url.rstrip("/")
        self.pool_manager = pool_manager

    def __repr__(self) -> str:
        return f"<{type(self).__name__}({self.base_url!r})>"

    def _rpc(self, command: str, fields: dict | None = None) -> bytes:
        import urllib3.exceptions

        url = f"{self.base_url}/api/v0/{command}"
        try:
            resp = self.pool_manager.request(
                "POST", url, fields=fields, preload_content=True
            )
        except urllib3.exceptions.HTTPError as e:
            raise BlobStoreError(f"IPFS request {command} failed: {e}") from e
        if resp.status != 200:
            raise BlobStoreError(
                f"IPFS request {command} failed with status {resp.status}: "
                f"{_rpc_error_message(resp.data)}"
            )
        return resp.data

    def put(self, data: bytes) -> str:
        body = self._rpc(
            "add?pin=true&cid-version=1", fields={"file": ("blob", data)}
        )
        try:
            address = json.loads(body)["Hash"]
        except (ValueError, KeyError, TypeError) as e:
            raise BlobStoreError(f"Unexpected response from IPFS add: {body!r}") from e
        logger.debug("Added %d bytes to IPFS as %s", len(data), address)
        return address

    def get(self, address: str) -> bytes:
        try:
            return self._rpc(f"cat?arg={quote(address, safe='')}")
        except BlobStoreError as e:
            if "not found" in str(e).lower():
                raise BlobNotFound(address) from e
            raise


def _rpc_error_message(body: bytes) -> str:
    try:
        return json.loads(body)["Message"]
    except (ValueError, KeyError, TypeError):
        return body.decode("utf-8", "replace")


def open_blob_store(url: str, **kwargs) -> BlobStore:
    """Open a blob store from a URL.

    Supported forms are ``memory:``, ``file:///path`` (or a plain path) and
    ``ipfs+http://host:port`` / ``ipfs+https://host:port``.
    """
    if url == "memory:":
        return MemoryBlobStore()
    parsed = urlparse(url)
    if parsed.scheme in ("ipfs+http", "ipfs+https"):
        scheme = parsed.scheme[len("ipfs+") :]
        return IpfsBlobStore(f"{scheme}://{parsed.netloc}{parsed.path}", **kwargs)
    if parsed.scheme == "file":
        return DiskBlobStore(parsed.path)
    if "://" not in url:
        return DiskBlobStore(url)
    raise ValueError(f"Unsupported blob store URL: {url}")
