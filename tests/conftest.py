"""
Test Configuration
==================

Builders for synthetic Cinepak, BMP and FILM streams.
"""

import struct

import numpy as np
import pytest


class CinepakStreamBuilder:
    """Assembles Cinepak frames byte by byte."""

    @staticmethod
    def entry(y, u=128, v=128):
        """One 6-byte codebook entry. u and v are given biased, as the decoder stores them."""
        if isinstance(y, int):
            y = [y] * 4
        return bytes(y) + bytes([(u - 128) & 0xFF, (v - 128) & 0xFF])

    @staticmethod
    def chunk(chunk_id, payload, size=None):
        if size is None:
            size = len(payload) + 4
        return bytes([chunk_id, (size >> 16) & 0xFF]) + struct.pack('>H', size & 0xFFFF) + payload

    @staticmethod
    def strip(height, chunks, strip_id=0x1000, geometry=(0, 0, 0)):
        # geometry: the top, left and right fields, which the decoder ignores
        body = b''.join(chunks)
        top, left, right = geometry
        return struct.pack('>HHHHHH', strip_id, len(body) + 12, top, left, height, right) + body

    @staticmethod
    def frame(width, height, strips, flags=0x01, pad=b''):
        body = b''.join(strips)
        length = 10 + len(body)
        header = bytes([flags, (length >> 16) & 0xFF]) + struct.pack('>HHHH', length & 0xFFFF, width, height, len(strips))
        return header + pad + body

    @staticmethod
    def flags(*bits):
        """Packs a sequence of 0/1 into big-endian 32-bit flag words, MSB first."""
        words = []
        for i in range(0, len(bits), 32):
            word = 0
            for n, bit in enumerate(bits[i:i+32]):
                if bit:
                    word |= 0x80000000 >> n
            words.append(struct.pack('>I', word))
        return b''.join(words)


@pytest.fixture
def cvid():
    return CinepakStreamBuilder


@pytest.fixture
def grey_bgr():
    """BGR of the {y: 100, u: 150, v: 150} entry used across tests."""
    return np.array([144, 67, 144], dtype=np.uint8)


@pytest.fixture
def two_strip_stream(cvid):
    """
    8x8 frame, no per-strip codebooks (flags bit 0 clear).
    Strip 0 loads V1 entry 0 and paints every block with it; strip 1
    inherits the codebook and paints every block with V1-only vectors.
    """
    strip0 = cvid.strip(4, [
        cvid.chunk(0x22, cvid.entry(100, 150, 150)),
        cvid.chunk(0x32, bytes([0, 0])),
    ])
    strip1 = cvid.strip(4, [
        cvid.chunk(0x32, bytes([0, 0])),
    ])
    return cvid.frame(8, 8, [strip0, strip1], flags=0x00)


@pytest.fixture
def skip_all_stream(cvid):
    """8x8 frame whose two strips mark every block unchanged."""
    strips = [cvid.strip(4, [cvid.chunk(0x31, cvid.flags(0, 0))]) for _ in range(2)]
    return cvid.frame(8, 8, strips, flags=0x00)
