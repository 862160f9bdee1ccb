"""Tests for scanforge.codec.lzf module."""

import math

import numpy as np
import pytest


def test_decompress_empty():
    """Test that an empty stream expands to nothing."""
    from scanforge.codec.lzf import decompress

    assert decompress(b"", 0) == b""


def test_decompress_single_literal():
    """Test a one-byte literal run."""
    from scanforge.codec.lzf import decompress

    assert decompress(b"\x00A", 1) == b"A"


def test_decompress_back_reference():
    """Test a short back-reference copying earlier output."""
    from scanforge.codec.lzf import decompress

    # Literal "abc", then copy 3 bytes from 3 back
    stream = b"\x02abc" + bytes([(1 << 5) | 0, 2])
    assert decompress(stream, 6) == b"abcabc"


def test_decompress_overlapping_back_reference():
    """Test that an overlapping copy repeats the pattern byte by byte."""
    from scanforge.codec.lzf import decompress

    # Literal "a", then copy 8 bytes from 1 back -> run of "a"
    stream = b"\x00a" + bytes([(6 << 5) | 0, 0])
    assert decompress(stream, 9) == b"a" * 9


def test_decompress_extended_length():
    """Test a back-reference whose length uses the extension byte."""
    from scanforge.codec.lzf import decompress

    # Literal "xy", then (7 + 20) + 2 = 29 bytes from 2 back
    stream = b"\x01xy" + bytes([(7 << 5) | 0, 20, 1])
    assert decompress(stream, 31) == b"xy" * 15 + b"x"


def test_decompress_offset_before_start():
    """Test that a reference before the start of the output fails."""
    from scanforge.codec.lzf import decompress
    from scanforge.errors import CompressionError

    stream = b"\x00a" + bytes([(1 << 5) | 0, 5])
    with pytest.raises(CompressionError, match="offset"):
        decompress(stream, 4)


def test_decompress_truncated_literal():
    """Test that a literal run longer than the input fails."""
    from scanforge.codec.lzf import decompress
    from scanforge.errors import CompressionError

    with pytest.raises(CompressionError, match="Truncated literal"):
        decompress(b"\x04ab", 5)


def test_decompress_missing_offset_byte():
    """Test that a back-reference without its offset byte fails."""
    from scanforge.codec.lzf import decompress
    from scanforge.errors import CompressionError

    with pytest.raises(CompressionError, match="Truncated back-reference"):
        decompress(b"\x00a" + bytes([1 << 5]), 4)


def test_decompress_missing_extension_offset():
    """Test that an extended back-reference without its offset byte fails."""
    from scanforge.codec.lzf import decompress
    from scanforge.errors import CompressionError

    with pytest.raises(CompressionError, match="Truncated back-reference"):
        decompress(b"\x00a" + bytes([7 << 5, 3]), 20)


def test_decompress_wrong_size():
    """Test that producing fewer bytes than expected fails."""
    from scanforge.codec.lzf import decompress
    from scanforge.errors import CompressionError

    with pytest.raises(CompressionError, match="expected 10"):
        decompress(b"\x02abc", 10)


def test_decompress_size_beyond_expansion():
    """Test that an expected size the input cannot reach fails before decoding."""
    from scanforge.codec.lzf import MAX_MATCH, decompress, max_decompressed_size
    from scanforge.errors import CompressionError

    assert max_decompressed_size(3) == MAX_MATCH
    assert max_decompressed_size(0) == 0

    with pytest.raises(CompressionError, match="cannot expand"):
        decompress(b"\x00a", 10**9)


def test_decompress_into_capacity():
    """Test that output capacity is never exceeded."""
    from scanforge.codec.lzf import decompress_into
    from scanforge.errors import CompressionError

    with pytest.raises(CompressionError, match="capacity"):
        decompress_into(b"\x03abcd", bytearray(2))

    stream = b"\x00a" + bytes([(6 << 5) | 0, 0])
    with pytest.raises(CompressionError, match="capacity"):
        decompress_into(stream, bytearray(4))


def test_decompress_into_returns_length():
    """Test that decompress_into reports the number of bytes produced."""
    from scanforge.codec.lzf import decompress_into

    output = bytearray(16)
    produced = decompress_into(b"\x02abc", output)

    assert produced == 3
    assert bytes(output[:3]) == b"abc"
    assert bytes(output[3:]) == b"\x00" * 13


def test_decompress_into_stops_when_output_full():
    """Test that decoding stops once the output buffer is full."""
    from scanforge.codec.lzf import decompress_into

    output = bytearray(3)
    produced = decompress_into(b"\x02abc\x00d", output)

    assert produced == 3
    assert bytes(output) == b"abc"


def test_compress_empty():
    """Test compressing empty input."""
    from scanforge.codec.lzf import compress

    assert compress(b"") == b""


def test_compress_single_byte():
    """Test compressing a single byte."""
    from scanforge.codec.lzf import compress, decompress

    compressed = compress(b"Z")
    assert compressed == b"\x00Z"
    assert decompress(compressed, 1) == b"Z"


def test_compress_round_trip_text():
    """Test that repetitive text round-trips and shrinks."""
    from scanforge.codec.lzf import compress, decompress

    data = b"The quick brown fox jumps over the lazy dog. " * 50
    compressed = compress(data)

    assert len(compressed) < len(data) // 4
    assert decompress(compressed, len(data)) == data


def test_compress_round_trip_long_runs():
    """Test matches longer than the maximum back-reference length."""
    from scanforge.codec.lzf import MAX_MATCH, compress, decompress

    data = b"\x00" * (MAX_MATCH * 5 + 7)
    compressed = compress(data)

    assert decompress(compressed, len(data)) == data


def test_compress_round_trip_far_matches():
    """Test that repeats beyond the maximum offset still round-trip."""
    from scanforge.codec.lzf import MAX_OFFSET, compress, decompress

    rng = np.random.default_rng(3)
    block = rng.integers(0, 256, MAX_OFFSET + 100, dtype=np.uint8).tobytes()
    data = block + block

    assert decompress(compress(data), len(data)) == data


def test_compress_random_data_bound():
    """Test that incompressible data grows by at most one byte per 32."""
    from scanforge.codec.lzf import compress, decompress

    rng = np.random.default_rng(11)
    for size in (1, 31, 32, 33, 1000, 4096):
        data = rng.integers(0, 256, size, dtype=np.uint8).tobytes()
        compressed = compress(data)

        assert len(compressed) <= size + math.ceil(size / 32)
        assert decompress(compressed, size) == data


def test_compress_accepts_memoryview():
    """Test that bytes-like inputs are accepted."""
    from scanforge.codec.lzf import compress, decompress

    data = bytearray(b"abcabcabcabc")
    compressed = compress(memoryview(data))

    assert decompress(compressed, len(data)) == bytes(data)


class TestDecoderFuzzing:
    """Corrupt streams must raise CompressionError, never anything else."""

    @pytest.fixture
    def valid_stream(self):
        from scanforge.codec.lzf import compress

        rng = np.random.default_rng(1234)
        words = [b"alpha", b"beta", b"gamma", b"delta", b"\x00\x00\x00\x00"]
        data = b"".join(words[i] for i in rng.integers(0, len(words), 400))
        return data, compress(data)

    def test_truncated_streams(self, valid_stream):
        """Every proper prefix either fails cleanly or comes up short."""
        from scanforge.codec.lzf import decompress
        from scanforge.errors import CompressionError

        data, compressed = valid_stream
        for cut in range(len(compressed)):
            with pytest.raises(CompressionError):
                decompress(compressed[:cut], len(data))

    def test_mutated_streams(self, valid_stream):
        """Random byte flips never escape as non-codec errors."""
        from scanforge.codec.lzf import decompress_into
        from scanforge.errors import CompressionError

        data, compressed = valid_stream
        rng = np.random.default_rng(99)

        for _ in range(300):
            mutated = bytearray(compressed)
            for pos in rng.integers(0, len(mutated), 3):
                mutated[pos] = int(rng.integers(0, 256))

            output = bytearray(len(data))
            try:
                produced = decompress_into(bytes(mutated), output)
            except CompressionError:
                continue
            assert 0 <= produced <= len(data)

    def test_random_garbage(self):
        """Pure noise decodes or fails with CompressionError."""
        from scanforge.codec.lzf import decompress_into
        from scanforge.errors import CompressionError

        rng = np.random.default_rng(5)
        for _ in range(200):
            garbage = rng.integers(0, 256, int(rng.integers(1, 64)), dtype=np.uint8).tobytes()
            output = bytearray(int(rng.integers(0, 128)))
            try:
                produced = decompress_into(garbage, output)
            except CompressionError:
                continue
            assert produced <= len(output)
