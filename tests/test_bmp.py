import io
import struct

import numpy as np
import pytest
from PIL import Image

from cvidtools.bmp import open_cinepak_bmp, write_bmp
from cvidtools.cinepak import CinepakDecoder
from cvidtools.convert_cinepak_bmp import main


def cinepak_bmp(frame, width, height, compression=b'cvid', header_size=40, magic=b'BM'):
    image_offset = 14 + 40
    info = struct.pack('<IiiHH4sIiiII', header_size, width, height, 1, 24, compression,
                       len(frame), 0, 0, 0, 0)
    file_header = struct.pack('<2sIHHI', magic, image_offset + len(frame), 0, 0, image_offset)
    return file_header + info + frame


@pytest.fixture
def grey_frame(cvid):
    strip = cvid.strip(4, [
        cvid.chunk(0x22, cvid.entry(100, 150, 150)),
        cvid.chunk(0x32, bytes([0, 0])),
    ])
    return cvid.frame(8, 4, [strip])


def test_open_positions_stream_at_image_data(grey_frame):
    f = io.BytesIO(cinepak_bmp(grey_frame, 8, 4))
    info = open_cinepak_bmp(f)
    assert info['image_offset'] == 54
    assert (info['width'], info['height']) == (8, 4)
    assert f.tell() == 54

    result = CinepakDecoder().decode_image(f)
    assert result.ok


@pytest.mark.parametrize('kwargs, message', [
    ({'magic': b'XX'}, "Not a valid bitmap image"),
    ({'header_size': 12}, "Not a Windows v3 bitmap"),
    ({'compression': b'MSVC'}, "Not a Cinepak bitmap"),
])
def test_open_rejects_other_bitmaps(grey_frame, kwargs, message):
    f = io.BytesIO(cinepak_bmp(grey_frame, 8, 4, **kwargs))
    with pytest.raises(ValueError, match=message):
        open_cinepak_bmp(f)


def test_open_rejects_short_file():
    with pytest.raises(ValueError):
        open_cinepak_bmp(io.BytesIO(b'BM\x00'))


def test_write_bmp_keeps_pixels(tmp_path):
    surface = np.zeros((3, 5, 3), dtype=np.uint8)
    surface[0, 0] = (255, 0, 0)   # blue
    surface[2, 4] = (0, 0, 255)   # red
    path = tmp_path / 'out.bmp'
    write_bmp(path, surface)

    with Image.open(path) as img:
        assert img.format == 'BMP'
        assert img.mode == 'RGB'
        assert img.size == (5, 3)
        assert img.getpixel((0, 0)) == (0, 0, 255)
        assert img.getpixel((4, 2)) == (255, 0, 0)


def test_cli_converts_image(tmp_path, grey_frame, capsys):
    src = tmp_path / 'in.bmp'
    dst = tmp_path / 'out.bmp'
    src.write_bytes(cinepak_bmp(grey_frame, 8, 4))

    assert main([str(src), str(dst)]) == 0
    assert "Saved" in capsys.readouterr().out
    with Image.open(dst) as img:
        assert img.size == (8, 4)
        assert img.getpixel((7, 3)) == (144, 67, 144)


def test_cli_fails_on_unknown_chunk(tmp_path, cvid):
    strip = cvid.strip(4, [cvid.chunk(0x50, b'')])
    src = tmp_path / 'in.bmp'
    src.write_bytes(cinepak_bmp(cvid.frame(4, 4, [strip]), 4, 4))
    assert main([str(src), str(tmp_path / 'out.bmp')]) == 1


def test_cli_fails_on_plain_bitmap(tmp_path, grey_frame):
    src = tmp_path / 'in.bmp'
    src.write_bytes(cinepak_bmp(grey_frame, 8, 4, compression=b'\x00\x00\x00\x00'))
    dst = tmp_path / 'out.bmp'
    assert main([str(src), str(dst)]) == 1
    assert not dst.exists()


def test_cli_fails_on_missing_input(tmp_path, capsys):
    assert main([str(tmp_path / 'nope.bmp'), str(tmp_path / 'out.bmp')]) == 1
    assert "Could not open" in capsys.readouterr().out
