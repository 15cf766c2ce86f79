#!/usr/bin/env python3
"""
Tests for barcode checksum validation
"""

import random

import pytest

from purescan.checksum import BarcodeType, check_digit, classify_symbology, is_valid, normalize


class TestNormalize:
    """Test cases for normalize()"""

    def test_twelve_digits_get_check_digit(self):
        """UPC-A input gets the EAN-13 check digit appended"""
        assert normalize("123456789012") == "1234567890128"

    def test_normalized_twelve_digit_codes_are_valid(self):
        """Every 12-digit input normalizes to a valid code"""
        rng = random.Random(42)
        for _ in range(200):
            raw = ''.join(rng.choice('0123456789') for _ in range(12))
            code = normalize(raw)
            assert len(code) == 13
            assert code.startswith(raw)
            assert is_valid(code)

    def test_non_digits_are_stripped(self):
        assert normalize("1-23456 78901-2") == "1234567890128"
        assert normalize(" 4006381333931\n") == "4006381333931"

    def test_long_input_is_truncated(self):
        assert normalize("40063813339319999") == "4006381333931"

    def test_thirteen_digits_pass_through_unchecked(self):
        """normalize does not validate 13-digit input"""
        assert normalize("1234567890123") == "1234567890123"

    @pytest.mark.parametrize("raw", [None, "", "abc", "12345", "12345678901", "4006-3813"])
    def test_short_input_rejected(self, raw):
        assert normalize(raw) is None


class TestIsValid:
    """Test cases for is_valid()"""

    def test_known_valid_codes(self):
        assert is_valid("4006381333931")
        assert is_valid("0000000000017")
        assert is_valid("1234567890128")

    def test_wrong_check_digit(self):
        """All wrong check digits are rejected"""
        base = "400638133393"
        good = check_digit(base)
        for digit in range(10):
            if digit != good:
                assert not is_valid(base + str(digit))

    @pytest.mark.parametrize("code", [None, "", "123456789012", "12345678901280", "40063813339a1", " 4006381333931"])
    def test_malformed(self, code):
        assert not is_valid(code)


class TestClassifySymbology:

    def test_classification(self):
        assert classify_symbology("4006381333931") is BarcodeType.EAN13
        assert classify_symbology("123456789012") is BarcodeType.UPCA
        assert classify_symbology("96385074") is BarcodeType.EAN8
        assert classify_symbology("ABC-123") is BarcodeType.UNKNOWN
