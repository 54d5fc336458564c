import numpy as np
import pytest

from bmppath.bmppath import Bitmap, bits_from_bytes, parse_bits


def test_bits_from_bytes_msb_first():
    bits = bits_from_bytes(b"\x81\x40")
    assert bits.dtype == bool
    assert bits.tolist() == [
        True, False, False, False, False, False, False, True,
        False, True, False, False, False, False, False, False,
    ]


def test_bits_from_bytes_truncates():
    assert len(bits_from_bytes(b"\xff\xff", 11)) == 11


def test_parse_bits_ignores_separators():
    bits = parse_bits("0b1_01/0 1\n1")
    assert bits.tolist() == [True, False, True, False, True, True]


def test_parse_bits_rejects_other_characters():
    with pytest.raises(ValueError):
        parse_bits("10x1")


def test_from_bits_accepts_sequences():
    bitmap = Bitmap.from_bits([1, 0, 0, 1, 1, 0], 3)
    assert (bitmap.width, bitmap.height) == (3, 2)
    assert bitmap.data.tolist() == [[True, False, False], [True, True, False]]


def test_from_bits_accepts_bytearray_items():
    bitmap = Bitmap.from_bits(bytearray([0, 1, 1, 0]), 2)
    assert bitmap.data.tolist() == [[False, True], [True, False]]


def test_grayscale_array_is_thresholded():
    gray = np.array([[0, 255], [100, 200]], dtype=np.uint8)

    assert Bitmap(gray).data.tolist() == [[True, False], [True, False]]
    assert Bitmap(gray, blacklevel=0.3).data.tolist() == [[True, False], [False, False]]


def test_bool_array_used_as_is():
    data = np.array([[True, False], [False, True]])
    assert Bitmap(data).data.tolist() == data.tolist()


def test_pil_image():
    Image = pytest.importorskip("PIL.Image")

    img = Image.new("RGB", (3, 2), "white")
    img.putpixel((0, 0), (0, 0, 0))
    img.putpixel((2, 1), (20, 20, 20))

    bitmap = Bitmap(img)
    assert (bitmap.width, bitmap.height) == (3, 2)
    assert bitmap.data.tolist() == [[True, False, False], [False, False, True]]

    path = bitmap.trace()
    assert path.vertices == (
        ((0, 0), (1, 0), (1, 1), (0, 1)),
        ((2, 1), (3, 1), (3, 2), (2, 2)),
    )
