"""Binary message format shared by the client and the server."""

from __future__ import annotations

import io
import struct
from dataclasses import dataclass
from typing import BinaryIO

_HEADER = struct.Struct("=IHI")
_U32_MAX = 2**32 - 1
_U16_MAX = 2**16 - 1


def _read_exact(stream: BinaryIO, size: int) -> bytes:
    chunk = stream.read(size)
    if chunk is None or len(chunk) != size:
        raise EOFError("failed to fill whole buffer")
    return chunk


@dataclass
class Data:
    """A u32, a u16 and a length-prefixed UTF-8 string, in native byte order."""

    field1: int
    field2: int
    field3: str

    def serialize(self) -> bytes:
        if not 0 <= self.field1 <= _U32_MAX:
            raise ValueError("field1 must fit in an unsigned 32-bit integer")
        if not 0 <= self.field2 <= _U16_MAX:
            raise ValueError("field2 must fit in an unsigned 16-bit integer")
        text = self.field3.encode("utf-8")
        if len(text) > _U32_MAX:
            raise ValueError("field3 is too long")
        return _HEADER.pack(self.field1, self.field2, len(text)) + text

    @classmethod
    def deserialize(cls, buffer: bytes | bytearray | memoryview | BinaryIO) -> Data:
        """Decode one message from bytes or from a binary stream, which is advanced past it.

        Raises EOFError when the input is too short and ValueError on invalid UTF-8.
        """
        stream = io.BytesIO(bytes(buffer)) if isinstance(buffer, (bytes, bytearray, memoryview)) else buffer
        field1, field2, length = _HEADER.unpack(_read_exact(stream, _HEADER.size))
        raw = _read_exact(stream, length)
        try:
            field3 = raw.decode("utf-8")
        except UnicodeDecodeError:
            raise ValueError("Invalid UTF-8") from None
        return cls(field1, field2, field3)