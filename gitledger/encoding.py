# encoding.py -- Canonical binary encoding primitives
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

"""Canonical binary encoding.

Objects and the index are stored in a versionless, deterministic format so
that the same logical value always encodes to the same bytes:

- lengths and counts use a compact variable-width integer whose two low
  bits select a 1, 2, 4 or n byte little-endian form;
- byte strings are a compact length followed by the bytes; text is UTF-8;
- sequences are a compact count followed by the items;
- sets are encoded as sorted sequences, maps as key-sorted pairs;
- variants are a single byte tag followed by the variant's fields.

Every ``decode_*`` function takes the buffer and an offset and returns a
tuple of (value, new_offset).
"""

import struct
from collections.abc import Callable, Iterable, Mapping
from typing import TypeVar

from .errors import DecodeError

T = TypeVar("T")

_SINGLE_BYTE_LIMIT = 1 << 6
_TWO_BYTE_LIMIT = 1 << 14
_FOUR_BYTE_LIMIT = 1 << 30
# The big-integer form stores its byte length minus four in six bits.
_MAX_BIG_INTEGER_BYTES = 4 + 63


def encode_compact(value: int) -> bytes:
    """Encode a non-negative integer in compact form.

    Args:
      value: Integer to encode
    Returns:
      Encoded bytes
    """
    if value < 0:
        raise ValueError(f"cannot encode negative length {value}")
    if value < _SINGLE_BYTE_LIMIT:
        return bytes([value << 2])
    if value < _TWO_BYTE_LIMIT:
        return struct.pack("<H", (value << 2) | 0b01)
    if value < _FOUR_BYTE_LIMIT:
        return struct.pack("<I", (value << 2) | 0b10)
    length = max(4, (value.bit_length() + 7) // 8)
    if length > _MAX_BIG_INTEGER_BYTES:
        raise ValueError(f"integer {value} too large for compact encoding")
    return bytes([((length - 4) << 2) | 0b11]) + value.to_bytes(length, "little")


def _take(data: bytes, offset: int, length: int) -> bytes:
    end = offset + length
    if end > len(data):
        raise DecodeError(
            f"unexpected end of data: wanted {length} bytes at offset {offset}, "
            f"have {len(data) - offset}"
        )
    return data[offset:end]


def decode_compact(data: bytes, offset: int = 0) -> tuple[int, int]:
    """Decode a compact integer.

    Only the shortest form of a value is accepted, so that decoding and
    re-encoding always gives back the same bytes.

    Args:
      data: Bytes to decode from
      offset: Starting offset in data
    Returns:
      tuple of (decoded_value, new_offset)
    Raises:
      DecodeError: if the data is truncated or not in its shortest form
    """
    mode = _take(data, offset, 1)[0] & 0b11
    if mode == 0b00:
        return data[offset] >> 2, offset + 1
    if mode == 0b01:
        (value,) = struct.unpack("<H", _take(data, offset, 2))
        value >>= 2
        end = offset + 2
        minimum = _SINGLE_BYTE_LIMIT
    elif mode == 0b10:
        (value,) = struct.unpack("<I", _take(data, offset, 4))
        value >>= 2
        end = offset + 4
        minimum = _TWO_BYTE_LIMIT
    else:
        length = (data[offset] >> 2) + 4
        raw = _take(data, offset + 1, length)
        if length > 4 and raw[-1] == 0:
            raise DecodeError(f"compact integer at offset {offset} has padding bytes")
        value = int.from_bytes(raw, "little")
        end = offset + 1 + length
        minimum = _FOUR_BYTE_LIMIT
    if value < minimum:
        raise DecodeError(
            f"compact integer {value} at offset {offset} is not in its shortest form"
        )
    return value, end


def encode_u8(value: int) -> bytes:
    return struct.pack("<B", value)


def decode_u8(data: bytes, offset: int = 0) -> tuple[int, int]:
    return _take(data, offset, 1)[0], offset + 1


def encode_bytes(value: bytes) -> bytes:
    """Encode a byte string with its compact length prefix."""
    return encode_compact(len(value)) + value


def decode_bytes(data: bytes, offset: int = 0) -> tuple[bytes, int]:
    length, offset = decode_compact(data, offset)
    return _take(data, offset, length), offset + length


def encode_str(value: str) -> bytes:
    return encode_bytes(value.encode("utf-8"))


def decode_str(data: bytes, offset: int = 0) -> tuple[str, int]:
    raw, offset = decode_bytes(data, offset)
    try:
        return raw.decode("utf-8"), offset
    except UnicodeDecodeError as e:
        raise DecodeError(f"invalid UTF-8 string: {e}") from e


def encode_sequence(items: Iterable[T], encode_item: Callable[[T], bytes]) -> bytes:
    """Encode a sequence of items, preserving order."""
    chunks = [encode_item(item) for item in items]
    return encode_compact(len(chunks)) + b"".join(chunks)


def decode_sequence(
    data: bytes,
    offset: int,
    decode_item: Callable[[bytes, int], tuple[T, int]],
) -> tuple[list[T], int]:
    count, offset = decode_compact(data, offset)
    items = []
    for _ in range(count):
        item, offset = decode_item(data, offset)
        items.append(item)
    return items, offset


def encode_str_set(values: Iterable[str]) -> bytes:
    """Encode a set of strings as a sorted sequence."""
    return encode_sequence(sorted(set(values)), encode_str)


def decode_str_set(data: bytes, offset: int = 0) -> tuple[frozenset[str], int]:
    values, offset = decode_sequence(data, offset, decode_str)
    return frozenset(values), offset


def encode_str_map(mapping: Mapping[str, str]) -> bytes:
    """Encode a str to str mapping as key-sorted pairs."""
    return encode_sequence(
        sorted(mapping.items()), lambda kv: encode_str(kv[0]) + encode_str(kv[1])
    )


def decode_str_map(data: bytes, offset: int = 0) -> tuple[dict[str, str], int]:
    def decode_pair(data: bytes, offset: int) -> tuple[tuple[str, str], int]:
        key, offset = decode_str(data, offset)
        value, offset = decode_str(data, offset)
        return (key, value), offset

    pairs, offset = decode_sequence(data, offset, decode_pair)
    result = dict(pairs)
    if len(result) != len(pairs):
        raise DecodeError("duplicate keys in encoded map")
    return result, offset


def check_consumed(data: bytes, offset: int) -> None:
    """Raise DecodeError if data has bytes left after offset."""
    if offset != len(data):
        raise DecodeError(f"{len(data) - offset} trailing bytes after decoded value")
