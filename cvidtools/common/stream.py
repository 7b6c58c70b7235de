import struct


def read_u32_be(data, offset=0):
    return struct.unpack('>I', data[offset:offset+4])[0]

def read_u24_be(data, offset=0):
    # 24-bit fields are stored as one byte followed by a big-endian u16
    return (data[offset] << 16) | struct.unpack('>H', data[offset+1:offset+3])[0]

def read_u16_be(data, offset=0):
    return struct.unpack('>H', data[offset:offset+2])[0]


def read_exact(f, n):
    """Read n bytes from a stream, or None if the stream ends first."""
    raw = f.read(n)
    if len(raw) < n:
        return None
    return raw


class ChunkReader:
    """
    Cursor over one chunk payload with a fixed byte budget.
    Handlers ask `has()` before every read instead of running off the end;
    running short is reported to the caller, never raised.
    """

    def __init__(self, data):
        self.data = data
        self.offset = 0
        self.budget = len(data)

    def has(self, n):
        return self.offset + n <= self.budget

    def read_u8(self):
        val = self.data[self.offset]
        self.offset += 1
        return val

    def read_u32(self):
        val = read_u32_be(self.data, self.offset)
        self.offset += 4
        return val

    def read_bytes(self, n):
        val = self.data[self.offset:self.offset+n]
        self.offset += n
        return val
