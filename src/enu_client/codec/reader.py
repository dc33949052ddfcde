"""
Binary Reader

Inverse of BinaryWriter. Reading past the end of the buffer raises
EncodingError with the INVALID_BINARY code.
"""

import builtins
import struct

from ..runtime.errors import EncodingError, ErrorCode


class BinaryReader:
    """Sequential reader over an immutable byte buffer."""

    def __init__(self, buf: builtins.bytes):
        """
        Initialize reader with byte buffer.

        Args:
            buf: Byte buffer to read from
        """
        self._buf = buf
        self._off = 0

    @property
    def eof(self) -> bool:
        """True once every byte has been consumed."""
        return self._off >= len(self._buf)

    @property
    def offset(self) -> int:
        return self._off

    def _take(self, n: int) -> builtins.bytes:
        if self._off + n > len(self._buf):
            raise EncodingError(
                f"Buffer overflow: attempting to read {n} bytes at offset {self._off} "
                f"of {len(self._buf)}",
                ErrorCode.INVALID_BINARY,
            )
        out = self._buf[self._off : self._off + n]
        self._off += n
        return out

    def _fixed(self, fmt: str) -> int:
        return struct.unpack(fmt, self._take(struct.calcsize(fmt)))[0]

    def u8(self) -> int:
        return self._fixed('<B')

    def u16le(self) -> int:
        return self._fixed('<H')

    def u32le(self) -> int:
        return self._fixed('<I')

    def u64le(self) -> int:
        return self._fixed('<Q')

    def i8(self) -> int:
        return self._fixed('<b')

    def i16le(self) -> int:
        return self._fixed('<h')

    def i32le(self) -> int:
        return self._fixed('<i')

    def i64le(self) -> int:
        return self._fixed('<q')

    def u128le(self) -> int:
        return int.from_bytes(self._take(16), "little")

    def i128le(self) -> int:
        return int.from_bytes(self._take(16), "little", signed=True)

    def f32le(self) -> float:
        return self._fixed('<f')

    def f64le(self) -> float:
        return self._fixed('<d')

    def varuint32(self) -> int:
        """
        Read unsigned varint in LEB128 format.

        Returns:
            Decoded unsigned integer value
        """
        x = 0
        s = 0
        while True:
            b = self.u8()
            x |= (b & 0x7F) << s
            if b < 0x80:
                break
            s += 7
            if s > 35:
                raise EncodingError("varuint32 is too long", ErrorCode.INVALID_BINARY)
        return x

    def varint32(self) -> int:
        """Read zig-zag encoded signed varint."""
        v = self.varuint32()
        return (v >> 1) ^ -(v & 1)

    def bytes(self, n: int) -> builtins.bytes:
        """Read exactly ``n`` bytes."""
        return self._take(n)

    def len_prefixed_bytes(self) -> builtins.bytes:
        """Read bytes with a varuint32 length prefix."""
        return self._take(self.varuint32())

    def string(self) -> str:
        """Read a length-prefixed UTF-8 string."""
        try:
            return self.len_prefixed_bytes().decode("utf-8")
        except UnicodeDecodeError as e:
            raise EncodingError("Invalid UTF-8 string", ErrorCode.INVALID_BINARY, cause=e)
