"""
Binary Codec Module

- writer.py: binary writer with varint/primitive encoding
- reader.py: binary reader with varint/primitive decoding
"""

from .reader import BinaryReader
from .writer import BinaryWriter

__all__ = [
    "BinaryReader",
    "BinaryWriter",
]
