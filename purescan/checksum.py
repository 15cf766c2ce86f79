"""
Checksum validation for retail barcodes (EAN-13 / UPC-A)
"""

import re
from enum import Enum
from typing import Optional

_NON_DIGIT = re.compile(r'\D')
_EAN13 = re.compile(r'^\d{13}$')


class InvalidBarcodeError(ValueError):
    """Raised when a barcode is required but missing or malformed"""


class BarcodeType(Enum):
    """Barcode type classifications"""
    EAN13 = "EAN13"
    EAN8 = "EAN8"
    UPCA = "UPCA"
    UNKNOWN = "UNKNOWN"


def check_digit(digits: str) -> int:
    """
    EAN-13 check digit over the first 12 digits.

    Digits at even index (from the left) weigh 1, odd index weigh 3.
    """
    total = sum(int(d) * (3 if i % 2 else 1) for i, d in enumerate(digits[:12]))
    return (10 - total % 10) % 10


def normalize(raw: Optional[str]) -> Optional[str]:
    """
    Normalize a scanned or typed code into a 13-digit EAN-13 string

    Args:
        raw: raw decoder output or user input

    Returns:
        13 digits, or None when the input cannot be made 13 digits long
    """
    if not raw:
        return None

    digits = _NON_DIGIT.sub('', raw)

    if len(digits) == 12:
        digits += str(check_digit(digits))
    elif len(digits) > 13:
        digits = digits[:13]

    if len(digits) != 13:
        return None

    return digits


def is_valid(code: Optional[str]) -> bool:
    """True iff code is 13 digits and carries a correct EAN-13 check digit"""
    if not code or not _EAN13.match(code):
        return False
    return int(code[12]) == check_digit(code)


def classify_symbology(raw: str) -> BarcodeType:
    """Classify barcode type based on data pattern"""
    if not raw or not raw.isdigit():
        return BarcodeType.UNKNOWN

    if len(raw) == 13:
        return BarcodeType.EAN13
    elif len(raw) == 12:
        return BarcodeType.UPCA
    elif len(raw) == 8:
        return BarcodeType.EAN8
    return BarcodeType.UNKNOWN
