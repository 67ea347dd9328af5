"""
Unit tests for confirmation number generation.
"""

import re

import pytest

from utils.id_utils import new_confirmation_number, to_base36


class TestToBase36:

    def test_known_values(self):
        assert to_base36(0) == "0"
        assert to_base36(35) == "Z"
        assert to_base36(36) == "10"

    def test_rejects_negative(self):
        with pytest.raises(ValueError):
            to_base36(-1)


class TestConfirmationNumber:

    def test_format(self):
        number = new_confirmation_number()
        assert re.fullmatch(r"[0-9A-Z]+-[0-9A-Z]{4}", number)

    def test_prefix_is_time_based(self):
        number = new_confirmation_number(now=lambda: 1.0)
        assert number.startswith(f"{to_base36(1000)}-")

    def test_same_millisecond_numbers_differ(self):
        numbers = {new_confirmation_number(now=lambda: 1700000000.0, suffix_length=8) for _ in range(50)}
        assert len(numbers) == 50
