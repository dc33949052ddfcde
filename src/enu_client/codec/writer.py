"""
Binary Writer

Primitive encoding for the ledger's binary layout: little-endian fixed
width integers, LEB128 varints, length-prefixed byte strings.
"""

import struct
from typing import List

from ..runtime.errors import EncodingError


class BinaryWriter:
    """
    Append-only binary writer.

    Integers are range checked before packing; overflow raises
    EncodingError instead of silently truncating.
    """

    def __init__(self):
        """Initialize writer with empty byte buffer."""
        self._bb: List[int] = []

    def _fixed(self, fmt: str, v: int, lo: int, hi: int) -> None:
        if not isinstance(v, int) or isinstance(v, bool):
            raise EncodingError(f"Expected integer, got {type(v).__name__}")
        if not lo <= v <= hi:
            raise EncodingError(f"Integer {v} out of range [{lo}, {hi}]")
        self._bb.extend(struct.pack(fmt, v))

    def u8(self, v: int) -> None:
        """Write unsigned 8-bit integer."""
        self._fixed('<B', v, 0, 0xFF)

    def u16le(self, v: int) -> None:
        """Write unsigned 16-bit integer in little-endian format."""
        self._fixed('<H', v, 0, 0xFFFF)

    def u32le(self, v: int) -> None:
        """Write unsigned 32-bit integer in little-endian format."""
        self._fixed('<I', v, 0, 0xFFFFFFFF)

    def u64le(self, v: int) -> None:
        """Write unsigned 64-bit integer in little-endian format."""
        self._fixed('<Q', v, 0, 0xFFFFFFFFFFFFFFFF)

    def i8(self, v: int) -> None:
        self._fixed('<b', v, -0x80, 0x7F)

    def i16le(self, v: int) -> None:
        self._fixed('<h', v, -0x8000, 0x7FFF)

    def i32le(self, v: int) -> None:
        self._fixed('<i', v, -0x80000000, 0x7FFFFFFF)

    def i64le(self, v: int) -> None:
        self._fixed('<q', v, -0x8000000000000000, 0x7FFFFFFFFFFFFFFF)

    def u128le(self, v: int) -> None:
        if not 0 <= v < 1 << 128:
            raise EncodingError(f"Integer {v} out of uint128 range")
        self._bb.extend(v.to_bytes(16, "little"))

    def i128le(self, v: int) -> None:
        if not -(1 << 127) <= v < 1 << 127:
            raise EncodingError(f"Integer {v} out of int128 range")
        self._bb.extend(v.to_bytes(16, "little", signed=True))

    def _float(self, fmt: str, v: float) -> None:
        try:
            packed = struct.pack(fmt, v)
        except (struct.error, OverflowError) as e:
            raise EncodingError(f"Float {v!r} cannot be packed as '{fmt}'", cause=e)
        self._bb.extend(packed)

    def f32le(self, v: float) -> None:
        self._float('<f', v)

    def f64le(self, v: float) -> None:
        self._float('<d', v)

    def bytes(self, v: bytes) -> None:
        """Write raw bytes without length prefix."""
        self._bb.extend(v)

    def varuint32(self, v: int) -> None:
        """
        Write unsigned varint in LEB128 format.

        Args:
            v: Value in the uint32 range
        """
        if not isinstance(v, int) or not 0 <= v <= 0xFFFFFFFF:
            raise EncodingError(f"varuint32 value {v!r} out of range")
        x = v
        while x >= 0x80:
            self._bb.append((x & 0x7F) | 0x80)
            x >>= 7
        self._bb.append(x)

    def varint32(self, v: int) -> None:
        """Write signed varint using zig-zag encoding."""
        if not isinstance(v, int) or not -0x80000000 <= v <= 0x7FFFFFFF:
            raise EncodingError(f"varint32 value {v!r} out of range")
        self.varuint32(((v << 1) ^ (v >> 31)) & 0xFFFFFFFF)

    def len_prefixed_bytes(self, v: bytes) -> None:
        """Write bytes with a varuint32 length prefix."""
        self.varuint32(len(v))
        self.bytes(v)

    def string(self, s: str) -> None:
        """Write a UTF-8 string with a varuint32 byte-length prefix."""
        self.len_prefixed_bytes(s.encode("utf-8"))

    def to_bytes(self) -> bytes:
        """
        Return accumulated bytes as immutable bytes object.

        Returns:
            Bytes containing all written data
        """
        return bytes(self._bb)
