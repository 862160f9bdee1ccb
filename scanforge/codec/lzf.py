"""
LZF byte-stream codec.

Implements the liblzf wire format used by the PCD ``binary_compressed``
representation. The stream is a sequence of control-tagged units:

- control byte ``c < 32``: literal run of ``c + 1`` raw bytes
- control byte ``c >= 32``: back-reference of ``(c >> 5) + 2`` bytes
  (``7`` in the top bits means an extension byte is added to the length),
  starting ``((c & 0x1F) << 8) + next + 1`` bytes behind the output cursor

Decoding never reads past the input or writes past the output capacity;
any violation raises :class:`~scanforge.errors.CompressionError`.
"""

from typing import Dict, Union

from scanforge.errors import CompressionError

BytesLike = Union[bytes, bytearray, memoryview]

# Literal runs encode 1..32 bytes in the low five bits of the control byte
MAX_LITERAL = 32

# Back-references: 3..264 bytes, up to 8192 bytes behind the cursor
MIN_MATCH = 3
MAX_MATCH = (7 + 255) + 2
MAX_OFFSET = 1 << 13


def max_decompressed_size(compressed_size: int) -> int:
    """Upper bound on the output of ``compressed_size`` bytes of LZF.

    The densest unit is a 3-byte back-reference expanding to MAX_MATCH bytes.
    """
    return -(-compressed_size * MAX_MATCH // 3)


def decompress_into(data: BytesLike, output: Union[bytearray, memoryview]) -> int:
    """
    Decompress an LZF stream into a caller-supplied buffer.

    Parameters
    ----------
    data : bytes-like
        Compressed stream.
    output : bytearray or memoryview
        Writable buffer; its length is the output capacity.

    Returns
    -------
    int
        Number of bytes written to ``output``.

    Raises
    ------
    CompressionError
        If the stream is truncated, references data before the start of
        the output, or needs more room than ``output`` provides.
    """
    src = memoryview(data).cast("B")
    out = memoryview(output).cast("B")
    in_end = len(src)
    out_end = len(out)
    ip = 0
    op = 0

    while ip < in_end and op < out_end:
        ctrl = src[ip]
        ip += 1

        if ctrl < 32:
            run = ctrl + 1
            if out_end - op < run:
                raise CompressionError(
                    f"Literal run of {run} bytes exceeds output capacity at offset {op}"
                )
            if in_end - ip < run:
                raise CompressionError(
                    f"Truncated literal run: need {run} bytes, {in_end - ip} left"
                )
            out[op:op + run] = src[ip:ip + run]
            ip += run
            op += run
            continue

        length = ctrl >> 5
        if ip >= in_end:
            raise CompressionError("Truncated back-reference (missing offset byte)")
        if length == 7:
            length += src[ip]
            ip += 1
            if ip >= in_end:
                raise CompressionError("Truncated back-reference (missing offset byte)")

        offset = ((ctrl & 0x1F) << 8) + src[ip] + 1
        ip += 1

        if offset > op:
            raise CompressionError(
                f"Back-reference offset {offset} exceeds {op} bytes produced"
            )

        length += 2
        if out_end - op < length:
            raise CompressionError(
                f"Back-reference of {length} bytes exceeds output capacity at offset {op}"
            )

        ref = op - offset
        if offset >= length:
            out[op:op + length] = out[ref:ref + length]
            op += length
        else:
            # Overlapping copy repeats the pattern, so it must go byte by byte
            for _ in range(length):
                out[op] = out[ref]
                op += 1
                ref += 1

    return op


def decompress(data: BytesLike, expected_size: int) -> bytes:
    """
    Decompress an LZF stream whose uncompressed size is known.

    Parameters
    ----------
    data : bytes-like
        Compressed stream.
    expected_size : int
        Exact number of bytes the stream must expand to.

    Returns
    -------
    bytes
        Decompressed data of length ``expected_size``.

    Raises
    ------
    CompressionError
        If decoding fails, produces a different number of bytes, or
        ``expected_size`` is more than ``data`` could expand to.
    """
    if expected_size < 0:
        raise CompressionError(f"Invalid expected size: {expected_size}")
    if expected_size > max_decompressed_size(len(data)):
        raise CompressionError(
            f"{len(data)} compressed bytes cannot expand to {expected_size} bytes"
        )

    output = bytearray(expected_size)
    produced = decompress_into(data, output)

    if produced != expected_size:
        raise CompressionError(
            f"Decompressed {produced} bytes, expected {expected_size}"
        )

    return bytes(output)


def compress(data: BytesLike) -> bytes:
    """
    Compress data into an LZF stream.

    Uses a hash of the next three bytes to find earlier occurrences and
    emits back-references for matches; everything else goes out as literal
    runs of at most 32 bytes.

    Parameters
    ----------
    data : bytes-like
        Data to compress.

    Returns
    -------
    bytes
        Compressed stream. Never longer than ``len(data) + ceil(len(data) / 32)``.
    """
    src = bytes(data)
    n = len(src)
    out = bytearray()
    table: Dict[bytes, int] = {}

    lit_start = 0
    ip = 0

    while ip + MIN_MATCH <= n:
        key = src[ip:ip + MIN_MATCH]
        ref = table.get(key)
        table[key] = ip

        if ref is None or ip - ref > MAX_OFFSET:
            ip += 1
            continue

        max_len = min(MAX_MATCH, n - ip)
        length = MIN_MATCH
        while length < max_len and src[ref + length] == src[ip + length]:
            length += 1

        _emit_literals(out, src, lit_start, ip)

        off = ip - ref - 1
        code = length - 2
        if code < 7:
            out.append((code << 5) | (off >> 8))
        else:
            out.append((7 << 5) | (off >> 8))
            out.append(code - 7)
        out.append(off & 0xFF)

        ip += length
        lit_start = ip

    _emit_literals(out, src, lit_start, n)
    return bytes(out)


def _emit_literals(out: bytearray, src: bytes, start: int, end: int) -> None:
    """Append ``src[start:end]`` as literal runs of at most MAX_LITERAL bytes."""
    while start < end:
        run = min(MAX_LITERAL, end - start)
        out.append(run - 1)
        out += src[start:start + run]
        start += run
