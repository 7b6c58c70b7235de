import struct

import numpy as np
from PIL import Image


# BITMAPFILEHEADER + the leading part of a v3 BITMAPINFOHEADER
FILE_HEADER = struct.Struct('<2sIHHI')
INFO_HEADER = struct.Struct('<IiiHH4s')
INFO_HEADER_SIZE = 40


def open_cinepak_bmp(f):
    """
    Validates a Cinepak-compressed BMP and seeks `f` to the image data.
    Returns a dict describing the container.
    """
    raw = f.read(FILE_HEADER.size)
    if len(raw) < FILE_HEADER.size:
        raise ValueError("Not a valid bitmap image")
    magic, file_size, _, _, image_offset = FILE_HEADER.unpack(raw)
    if magic != b'BM':
        raise ValueError("Not a valid bitmap image")

    raw = f.read(INFO_HEADER.size)
    if len(raw) < INFO_HEADER.size:
        raise ValueError("Not a Windows v3 bitmap")
    header_size, width, height, planes, bpp, compression = INFO_HEADER.unpack(raw)
    if header_size != INFO_HEADER_SIZE:
        raise ValueError("Not a Windows v3 bitmap")
    if compression != b'cvid':
        raise ValueError("Not a Cinepak bitmap")

    f.seek(image_offset)
    return {
        'file_size': file_size,
        'image_offset': image_offset,
        'width': width,
        'height': height,
        'bpp': bpp,
    }


def write_bmp(fp, surface):
    """Writes a packed BGR surface as a 24-bit uncompressed BMP."""
    rgb = np.ascontiguousarray(surface[:, :, ::-1])
    Image.fromarray(rgb).save(fp, format='BMP')
