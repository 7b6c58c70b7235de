"""Sega FILM container (.CPK on Saturn discs).

Layout, all big-endian:
  0:  'FILM'
  4:  header length (sample offsets are relative to this)
  8:  version (4 ASCII bytes)
  12: reserved
  16: chunks (tag, size including the 8-byte chunk header)
      FDSC: codec fourcc, height, width, bpp, audio channels/bits/type, rate
      STAB: timescale, sample count, then 16 bytes per sample:
            offset, size, info1, info2 (info1 == 0xFFFFFFFF marks audio)
"""

import struct

from cvidtools.common.stream import read_u16_be, read_u24_be


AUDIO_SAMPLE = 0xFFFFFFFF
STAB_ENTRY_SIZE = 16


class SegaFilmParser:
    def __init__(self, file_data):
        self.data = file_data
        self.offset = 0
        self.header = {}
        self.samples = []
        self._parse()

    def _read_u32(self):
        val = struct.unpack('>I', self.data[self.offset:self.offset+4])[0]
        self.offset += 4
        return val

    def _read_bytes(self, n):
        val = self.data[self.offset:self.offset+n]
        self.offset += n
        return val

    def _parse(self):
        if self.data[0:4] != b'FILM':
            raise ValueError("Not a Sega FILM file")
        if len(self.data) < 16:
            raise ValueError("Truncated FILM header")

        self.offset = 4
        self.base_offset = self._read_u32()
        self.header['version'] = self._read_bytes(4).decode('ascii', errors='replace')
        self._read_u32()  # reserved

        while self.offset + 8 <= min(self.base_offset, len(self.data)):
            chunk_tag = self._read_bytes(4)
            chunk_size = self._read_u32()
            if chunk_size < 8:
                raise ValueError(f"Invalid chunk size {chunk_size} for {chunk_tag!r}")

            data_start = self.offset
            data_len = chunk_size - 8
            if data_start + data_len > len(self.data):
                raise ValueError(f"Chunk {chunk_tag!r} runs past end of file")

            if chunk_tag == b'FDSC':
                self._parse_fdsc(data_start, data_len)
            elif chunk_tag == b'STAB':
                self._parse_stab(data_start, data_len)

            self.offset = data_start + data_len

        if 'codec' not in self.header:
            raise ValueError("FILM file has no FDSC chunk")

    def _parse_fdsc(self, start, length):
        if length < 16:
            raise ValueError(f"FDSC chunk too short: {length} bytes")
        d = self.data
        self.header['codec'] = d[start:start+4].decode('ascii', errors='replace')
        self.header['height'] = struct.unpack('>I', d[start+4:start+8])[0]
        self.header['width'] = struct.unpack('>I', d[start+8:start+12])[0]
        self.header['bpp'] = d[start+12]
        self.header['channels'] = d[start+13]
        self.header['bit_depth'] = d[start+14]
        self.header['audio_encoding'] = d[start+15]
        if length >= 18:
            self.header['sample_rate'] = read_u16_be(d, start+16)

    def _parse_stab(self, start, length):
        if length < 8:
            raise ValueError(f"STAB chunk too short: {length} bytes")
        self.header['timescale'] = struct.unpack('>I', self.data[start:start+4])[0]
        num_samples = struct.unpack('>I', self.data[start+4:start+8])[0]
        self.header['frame_count'] = num_samples

        curr = start + 8
        end = start + length
        for _ in range(num_samples):
            if curr + STAB_ENTRY_SIZE > end:
                break
            offset, size, info1, info2 = struct.unpack('>IIII', self.data[curr:curr+16])
            self.samples.append({
                'offset': self.base_offset + offset,
                'size': size,
                'info1': info1,
                'info2': info2,
                'audio': info1 == AUDIO_SAMPLE,
                'keyframe': info1 != AUDIO_SAMPLE and not (info1 & 0x80000000),
            })
            curr += STAB_ENTRY_SIZE

    def video_samples(self):
        """Yields the payload of every video sample, in table order."""
        for s in self.samples:
            if s['audio'] or s['size'] == 0:
                continue
            off, sz = s['offset'], s['size']
            if off + sz > len(self.data):
                print(f"Warning: video sample at {off} truncated")
                continue
            yield self.data[off:off+sz]


def detect_skip_bytes(sample):
    """
    Number of padding bytes between the frame header and the first strip.
    FILM frames declare a size that does not match the container's sample
    size; most then carry 2 extra bytes, a few known files carry 6.
    """
    if len(sample) < 10:
        return 0
    encoded_size = read_u24_be(sample, 1)
    if encoded_size == 0 or encoded_size == len(sample) or len(sample) % encoded_size == 0:
        return 0
    if len(sample) >= 16 and sample[10:16] == b'\xfe\x00\x00\x06\x00\x00':
        return 6
    return 2
