"""Cinepak (cvid) frame decoder.

A frame is a 10-byte header followed by horizontal strips. Each strip is a
12-byte header followed by chunks:

  0x20 0x21 0x24 0x25   V4 codebook (2x2 templates, four per 4x4 block)
  0x22 0x23 0x26 0x27   V1 codebook (one template upscaled over a 4x4 block)
  0x30 0x31 0x32        vector data

Codebook chunk bit 0 = conditional update under a flag word, bit 2 = 4-byte
(luma only) entries. Vector chunk bit 0 = blocks carry an update flag,
bit 1 = every block is V1.

The decoded surface is packed B,G,R, top row first.
"""

import io

import numpy as np
from PIL import Image

from cvidtools.common.stream import ChunkReader, read_exact, read_u16_be, read_u24_be


FRAME_HEADER_SIZE = 10
STRIP_HEADER_SIZE = 12
CHUNK_HEADER_SIZE = 4
CODEBOOK_SIZE = 256
FLAG_TOP_BIT = 0x80000000

V4_CODEBOOK_CHUNKS = (0x20, 0x21, 0x24, 0x25)
V1_CODEBOOK_CHUNKS = (0x22, 0x23, 0x26, 0x27)
VECTOR_CHUNKS = (0x30, 0x31, 0x32)

# Top-left corner of each 2x2 quadrant inside a 4x4 block: TL, TR, BL, BR
QUADRANTS = ((0, 0), (0, 2), (2, 0), (2, 2))


def clip(v, lo=0, hi=255):
    if v < lo:
        return lo
    if v > hi:
        return hi
    return v


def cpyuv_to_rgb(y, u, v):
    """Convert one pixel from YUV to RGB, Cinepak style. u and v carry the +128 bias."""
    u -= 128
    v -= 128
    r = clip(y + 2 * v)
    g = clip(y - int(u / 2) - v)
    b = clip(y + 2 * u)
    return r, g, b


def entries_to_bgr(entries):
    """Converts an (N, 6) array of codebook entries to (N, 4, 3) BGR pixels, one per luma sample."""
    e = entries.astype(np.int32)
    y = e[:, 0:4]
    u = e[:, 4:5] - 128
    v = e[:, 5:6] - 128
    r = y + 2 * v
    g = y - np.trunc(u / 2).astype(np.int32) - v
    b = y + 2 * u
    return np.clip(np.stack([b, g, r], axis=-1), 0, 255).astype(np.uint8)


def entry_to_bgr(entry):
    """Returns the four luma samples of a codebook entry as a (4, 3) array of BGR pixels."""
    return entries_to_bgr(np.asarray(entry).reshape(1, 6))[0]


class CodebookTable:
    """
    256 entries of (y0, y1, y2, y3, u, v).
    Chroma is stored with the +128 bias already applied. `bgr` holds each
    entry already converted, so writes must go through indexing or copy_from.
    """

    def __init__(self):
        self.entries = np.zeros((CODEBOOK_SIZE, 6), dtype=np.uint8)
        self.bgr = entries_to_bgr(self.entries)

    def _check(self, idx):
        if not 0 <= idx < CODEBOOK_SIZE:
            raise IndexError(f"Codebook index {idx} out of range")

    def __getitem__(self, idx):
        self._check(idx)
        return self.entries[idx]

    def __setitem__(self, idx, entry):
        self._check(idx)
        self.entries[idx] = entry
        self.bgr[idx] = entries_to_bgr(self.entries[idx:idx+1])[0]

    def __len__(self):
        return CODEBOOK_SIZE

    def pixels(self, idx):
        """BGR of the entry's four luma samples, shape (4, 3)."""
        self._check(idx)
        return self.bgr[idx]

    def copy_from(self, other):
        np.copyto(self.entries, other.entries)
        np.copyto(self.bgr, other.bgr)


class Strip:
    def __init__(self):
        self.id = 0
        self.length = 0
        self.top = 0
        self.left = 0
        self.bottom = 0
        self.right = 0
        self.v1_codebook = CodebookTable()
        self.v4_codebook = CodebookTable()


class Frame:
    def __init__(self):
        self.flags = 0
        self.length = 0
        self.width = 0
        self.height = 0
        self.strip_count = 0
        self.strips = []
        self.surface = None


class DecodeResult:
    def __init__(self, surface, width, height, ok):
        self.surface = surface
        self.width = width
        self.height = height
        self.ok = ok

    def to_image(self):
        """Returns the surface as an RGB PIL Image."""
        return Image.fromarray(np.ascontiguousarray(self.surface[:, :, ::-1]))


def load_codebook(codebook, chunk_id, reader):
    """
    Loads up to 256 entries from a codebook chunk into `codebook`.
    Returns False if the payload ran out first; entries not reached keep
    their previous values.
    """
    conditional = chunk_id & 0x01
    n = 4 if chunk_id & 0x04 else 6
    flag = 0
    mask = 0

    for i in range(CODEBOOK_SIZE):
        if conditional:
            mask >>= 1
            if not mask:
                if not reader.has(4):
                    return False
                flag = reader.read_u32()
                mask = FLAG_TOP_BIT

            if not (flag & mask):
                continue

        if not reader.has(n):
            return False

        raw = reader.read_bytes(n)
        if n == 6:
            # Chroma is signed in the stream
            u = (raw[4] + 128) & 0xFF
            v = (raw[5] + 128) & 0xFF
        else:
            # Greyscale or palettised video. Palettes are not handled.
            u = v = 128
        codebook[i] = (raw[0], raw[1], raw[2], raw[3], u, v)

    return True


def _put_block(surface, x, y, patch):
    height, width = surface.shape[:2]
    if x >= width or y >= height:
        return
    h_end = min(y + 4, height)
    w_end = min(x + 4, width)
    surface[y:h_end, x:w_end] = patch[0:h_end-y, 0:w_end-x]


def decode_vectors(strip, surface, chunk_id, reader):
    """
    Paints the strip's 4x4 blocks from a vector chunk.
    Returns False if the chunk ran out of data; blocks not reached keep
    whatever the surface already held.
    """
    flag = 0
    mask = 0

    # One flag word feeds both the update bit and the V1/V4 bit, in block order
    def next_bit():
        nonlocal flag, mask
        mask >>= 1
        if not mask:
            if not reader.has(4):
                return None
            flag = reader.read_u32()
            mask = FLAG_TOP_BIT
        return bool(flag & mask)

    for y in range(strip.top, strip.bottom, 4):
        for x in range(strip.left, strip.right, 4):
            if chunk_id & 0x01:
                coded = next_bit()
                if coded is None:
                    return False
                if not coded:
                    continue

            use_v1 = True
            if not (chunk_id & 0x02):
                selector = next_bit()
                if selector is None:
                    return False
                use_v1 = not selector

            if use_v1:
                if not reader.has(1):
                    return False
                pixels = strip.v1_codebook.pixels(reader.read_u8())
                # Each luma sample covers one 2x2 quadrant
                patch = pixels.reshape(2, 2, 3).repeat(2, axis=0).repeat(2, axis=1)
            else:
                if not reader.has(4):
                    return False
                indices = [reader.read_u8() for _ in range(4)]
                patch = np.empty((4, 4, 3), dtype=np.uint8)
                for (qy, qx), idx in zip(QUADRANTS, indices):
                    pixels = strip.v4_codebook.pixels(idx)
                    patch[qy:qy+2, qx:qx+2] = pixels.reshape(2, 2, 3)

            _put_block(surface, x, y, patch)

    return True


class CinepakDecoder:
    def __init__(self, skip_bytes=0, verbose=False):
        # skip_bytes: padding after the frame header (Sega FILM streams carry 2)
        self.frame = Frame()
        self.skip_bytes = skip_bytes
        self.verbose = verbose
        self._y = 0

    @property
    def width(self):
        return self.frame.width

    @property
    def height(self):
        return self.frame.height

    def decode_frame(self, data):
        """Decodes a frame held in memory."""
        return self.decode_image(io.BytesIO(data))

    def decode_image(self, f):
        """
        Decodes one frame from a stream positioned at the frame header.
        The returned surface belongs to the decoder and is overwritten by
        the next call.
        """
        frame = self.frame
        header = read_exact(f, FRAME_HEADER_SIZE)
        if header is None:
            if self.verbose:
                print("Truncated Cinepak frame header")
            return DecodeResult(frame.surface, frame.width, frame.height, ok=False)

        frame.flags = header[0]
        frame.length = read_u24_be(header, 1)
        frame.width = read_u16_be(header, 4)
        frame.height = read_u16_be(header, 6)
        frame.strip_count = read_u16_be(header, 8)

        if self.verbose:
            print(f"Frame flags={frame.flags:02x} size={frame.length} "
                  f"w={frame.width} h={frame.height} strips={frame.strip_count}")

        if self.skip_bytes:
            f.seek(self.skip_bytes, io.SEEK_CUR)

        self._allocate()
        self._y = 0

        for i in range(frame.strip_count):
            strip = frame.strips[i]
            if i > 0 and not (frame.flags & 0x01):
                # No new codebooks for this strip, carry the last strip's over
                strip.v1_codebook.copy_from(frame.strips[i - 1].v1_codebook)
                strip.v4_codebook.copy_from(frame.strips[i - 1].v4_codebook)

            if not self._read_strip_header(f, strip):
                if self.verbose:
                    print(f"Strip {i}: truncated header")
                break

            if not self._decode_strip(f, i, strip):
                return DecodeResult(frame.surface, frame.width, frame.height, ok=False)

            self._y = strip.bottom

        return DecodeResult(frame.surface, frame.width, frame.height, ok=True)

    def _allocate(self):
        frame = self.frame
        shape = (frame.height, frame.width, 3)
        if frame.surface is None or frame.surface.shape != shape:
            if frame.surface is not None and self.verbose:
                print(f"Frame size changed to {frame.width}x{frame.height}, reallocating")
            frame.surface = np.zeros(shape, dtype=np.uint8)
        while len(frame.strips) < frame.strip_count:
            frame.strips.append(Strip())

    def _read_strip_header(self, f, strip):
        raw = read_exact(f, STRIP_HEADER_SIZE)
        if raw is None:
            return False

        strip.id = read_u16_be(raw, 0)
        strip.length = max(read_u16_be(raw, 2) - STRIP_HEADER_SIZE, 0)
        # The stream's own top, left and right are ignored and recomputed
        strip.top = self._y
        strip.left = 0
        strip.bottom = self._y + read_u16_be(raw, 8)
        strip.right = self.frame.width
        return True

    def _decode_strip(self, f, i, strip):
        """Runs the chunk loop of one strip. Returns False on an unknown chunk."""
        if self.verbose:
            print(f"Strip {i}: id={strip.id:04x} size={strip.length} "
                  f"rows={strip.top}..{strip.bottom}")

        end = f.tell() + strip.length
        while f.tell() < end:
            raw = read_exact(f, CHUNK_HEADER_SIZE)
            if raw is None:
                break

            chunk_id = raw[0]
            chunk_size = max(read_u24_be(raw, 1) - CHUNK_HEADER_SIZE, 0)
            chunk_start = f.tell()
            reader = ChunkReader(f.read(chunk_size))

            if chunk_id in V4_CODEBOOK_CHUNKS:
                done = load_codebook(strip.v4_codebook, chunk_id, reader)
            elif chunk_id in V1_CODEBOOK_CHUNKS:
                done = load_codebook(strip.v1_codebook, chunk_id, reader)
            elif chunk_id in VECTOR_CHUNKS:
                done = decode_vectors(strip, self.frame.surface, chunk_id, reader)
            else:
                print(f"Unknown Cinepak chunk ID {chunk_id:02x}")
                return False

            if self.verbose:
                status = "" if done else " (truncated)"
                print(f"  Chunk {chunk_id:02x} size={chunk_size}{status}")

            # Handlers may under-read; always resume at the next chunk header
            f.seek(chunk_start + chunk_size)

        return True
