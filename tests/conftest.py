"""
Pytest fixtures shared by the bmppath tests
"""
import pytest

from bmppath.bmppath import bits_from_bytes, parse_bits


# 8x8 space invader, one byte per row
INVADER_BYTES = bytes([0x81, 0x42, 0x3C, 0x7E, 0xDB, 0x7E, 0x24, 0xC3])

# 37x37 QR code, packed MSB first
QR_WIDTH = 37
QR_HEX = (
    "00000000000000000000000000000000000000fed4abf804"
    "119090402e8c4eba0174b0b5d00babd3ae804154550403fa"
    "aaafe000019000007f4c31880086d63f4020deeb90008123"
    "4e20053fbd5380109aaf6c031b5534000986af1900477688"
    "6806a0a9ffc026d3e2f80171a607b00abb74ff80007f546c"
    "03fb8cea001054931900baba2ff005d49cea002eaa9fe401"
    "054d59a00fe1276e00000000000000000000000000000000"
    "00000000"
)


@pytest.fixture
def invader_bits():
    """Flat bit buffer of the 8x8 invader"""
    return bits_from_bytes(INVADER_BYTES)


@pytest.fixture
def qr_bits():
    """Flat bit buffer of the 37x37 QR code"""
    return bits_from_bytes(bytes.fromhex(QR_HEX), QR_WIDTH * QR_WIDTH)


@pytest.fixture
def ring_bitmap():
    """3x3 bitmap whose hole touches the outer notch at corner (2, 2)"""
    return parse_bits("111/101/110")
