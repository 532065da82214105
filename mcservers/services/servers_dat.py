"""Read and write the game client's multiplayer server list (servers.dat).

The file is an uncompressed NBT document::

    TAG_Compound "" {
      TAG_List "servers" <TAG_Compound> [
        TAG_Compound { TAG_String "name", TAG_String "ip" }, ...
      ]
    }

All integers are big-endian and string lengths count UTF-8 bytes.
"""

import logging
import struct
from enum import Enum
from typing import Any, Iterable, Union

from pydantic import ValidationError

from ..models import ServerEntry


TAG_END = 0
TAG_BYTE = 1
TAG_SHORT = 2
TAG_INT = 3
TAG_LONG = 4
TAG_FLOAT = 5
TAG_DOUBLE = 6
TAG_BYTE_ARRAY = 7
TAG_STRING = 8
TAG_LIST = 9
TAG_COMPOUND = 10
TAG_INT_ARRAY = 11
TAG_LONG_ARRAY = 12

MAX_STRING_BYTES = 0xFFFF

log = logging.getLogger("mc-servers")

EntryLike = Union[ServerEntry, tuple[str, str]]


class EncodingErrorKind(str, Enum):
    FIELD_TOO_LONG = "field_too_long"
    INVALID_STRING = "invalid_string"
    WRITE_FAILURE = "write_failure"


class EncodingError(Exception):
    def __init__(self, kind: EncodingErrorKind, message: str) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message


class DecodingError(ValueError):
    pass


def _as_entry(item: EntryLike, index: int) -> ServerEntry:
    if isinstance(item, ServerEntry):
        return item
    name, address = item
    try:
        return ServerEntry(name=name, address=address)
    except ValidationError as exc:
        raise EncodingError(
            EncodingErrorKind.INVALID_STRING, f"Server {index} is not a name/address pair: {exc}"
        ) from exc


def _tag_header(tag_type: int, name: str) -> bytes:
    encoded = name.encode("utf-8")
    return struct.pack(">BH", tag_type, len(encoded)) + encoded


def _string_payload(value: str, field: str, index: int) -> bytes:
    try:
        encoded = value.encode("utf-8")
    except UnicodeEncodeError as exc:
        raise EncodingError(
            EncodingErrorKind.INVALID_STRING,
            f"Server {index} {field} is not valid UTF-8 text: {exc.reason} at position {exc.start}",
        ) from exc
    if len(encoded) > MAX_STRING_BYTES:
        raise EncodingError(
            EncodingErrorKind.FIELD_TOO_LONG,
            f"Server {index} {field} is {len(encoded)} bytes; "
            f"NBT strings are limited to {MAX_STRING_BYTES} bytes",
        )
    return struct.pack(">H", len(encoded)) + encoded


def encode(entries: Iterable[EntryLike]) -> bytes:
    """Serialize server entries into a servers.dat document.

    Entries keep their input order; duplicates are preserved. Raises
    ``EncodingError(FIELD_TOO_LONG)`` when a name or address exceeds
    65535 UTF-8 bytes, and
    ``EncodingError(INVALID_STRING)`` when one holds lone surrogates.
    """
    servers = [_as_entry(item, index) for index, item in enumerate(entries)]

    buffer = bytearray()
    buffer += _tag_header(TAG_COMPOUND, "")
    buffer += _tag_header(TAG_LIST, "servers")
    # The element type stays TAG_Compound even for an empty list
    buffer += struct.pack(">Bi", TAG_COMPOUND, len(servers))
    for index, server in enumerate(servers):
        buffer += _tag_header(TAG_STRING, "name")
        buffer += _string_payload(server.name, "name", index)
        buffer += _tag_header(TAG_STRING, "ip")
        buffer += _string_payload(server.address, "ip", index)
        buffer.append(TAG_END)
    buffer.append(TAG_END)
    return bytes(buffer)


def write_servers_dat(path: str, entries: Iterable[EntryLike]) -> int:
    """Encode ``entries`` and write them to ``path``, replacing any existing file.

    The whole document is built in memory first, so an encoding failure
    never leaves a partial file behind. Returns the number of bytes written.
    """
    data = encode(entries)
    try:
        with open(path, "wb") as handle:
            handle.write(data)
    except OSError as exc:
        raise EncodingError(
            EncodingErrorKind.WRITE_FAILURE, f"Failed to write {path}: {exc}"
        ) from exc
    log.info("Wrote servers.dat to %s (%d bytes)", path, len(data))
    return len(data)


class _Reader:
    def __init__(self, data: bytes) -> None:
        self._data = data
        self._offset = 0

    def take(self, size: int) -> bytes:
        end = self._offset + size
        if size < 0 or end > len(self._data):
            raise DecodingError(f"Unexpected end of data at offset {self._offset}")
        chunk = self._data[self._offset:end]
        self._offset = end
        return chunk

    def unpack(self, fmt: str) -> Any:
        values = struct.unpack(fmt, self.take(struct.calcsize(fmt)))
        return values[0] if len(values) == 1 else values

    def string(self) -> str:
        raw = self.take(self.unpack(">H"))
        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise DecodingError(f"Invalid UTF-8 string: {exc}") from exc

    def payload(self, tag_type: int) -> Any:
        if tag_type == TAG_BYTE:
            return self.unpack(">b")
        if tag_type == TAG_SHORT:
            return self.unpack(">h")
        if tag_type == TAG_INT:
            return self.unpack(">i")
        if tag_type == TAG_LONG:
            return self.unpack(">q")
        if tag_type == TAG_FLOAT:
            return self.unpack(">f")
        if tag_type == TAG_DOUBLE:
            return self.unpack(">d")
        if tag_type == TAG_BYTE_ARRAY:
            return self.take(self._length())
        if tag_type == TAG_STRING:
            return self.string()
        if tag_type == TAG_LIST:
            return self._list()
        if tag_type == TAG_COMPOUND:
            return self._compound()
        if tag_type == TAG_INT_ARRAY:
            length = self._length()
            return list(struct.unpack(f">{length}i", self.take(length * 4)))
        if tag_type == TAG_LONG_ARRAY:
            length = self._length()
            return list(struct.unpack(f">{length}q", self.take(length * 8)))
        raise DecodingError(f"Unknown tag type {tag_type}")

    def _length(self) -> int:
        length = self.unpack(">i")
        if length < 0:
            raise DecodingError(f"Negative length {length}")
        return length

    def _list(self) -> list[Any]:
        element_type = self.unpack(">B")
        length = self._length()
        if element_type == TAG_END and length > 0:
            raise DecodingError("List of TAG_End must be empty")
        return [self.payload(element_type) for _ in range(length)]

    def _compound(self) -> dict[str, Any]:
        values: dict[str, Any] = {}
        while True:
            tag_type = self.unpack(">B")
            if tag_type == TAG_END:
                return values
            name = self.string()
            values[name] = self.payload(tag_type)


def decode(data: bytes) -> list[ServerEntry]:
    """Parse a servers.dat document back into ordered server entries.

    Extra per-server fields written by the game (icon, acceptTextures...)
    are ignored; entries without an ``ip`` are skipped.
    """
    reader = _Reader(data)
    root_type = reader.unpack(">B")
    if root_type != TAG_COMPOUND:
        raise DecodingError(f"Root tag must be a compound, got type {root_type}")
    reader.string()
    root = reader.payload(TAG_COMPOUND)

    servers = root.get("servers", [])
    if not isinstance(servers, list):
        raise DecodingError("'servers' must be a list")

    entries: list[ServerEntry] = []
    for item in servers:
        if not isinstance(item, dict):
            raise DecodingError("'servers' must contain compounds")
        address = item.get("ip")
        if not isinstance(address, str):
            continue
        name = item.get("name")
        entries.append(ServerEntry(name=name if isinstance(name, str) else "", address=address))
    return entries


def read_servers_dat(path: str) -> list[ServerEntry]:
    with open(path, "rb") as handle:
        return decode(handle.read())
