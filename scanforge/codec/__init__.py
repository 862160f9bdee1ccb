"""Byte-stream codecs used by the point cloud formats."""

from scanforge.codec.lzf import compress, decompress, decompress_into

__all__ = [
    "compress",
    "decompress",
    "decompress_into",
]
