import math

import numpy as np
import pytest

from string_art.validation import check_range, is_integer, is_number


class TestIsNumber:
    @pytest.mark.parametrize("value", [0, 3, -2.5, np.float32(1.5), np.int64(7)])
    def test_finite(self, value):
        assert is_number(value)

    @pytest.mark.parametrize("value", [math.nan, math.inf, -math.inf, np.nan, "10", None, True, [1]])
    def test_rejected(self, value):
        assert not is_number(value)


class TestIsInteger:
    @pytest.mark.parametrize("value,expected", [(3, True), (3.0, True), (3.5, False), (False, False)])
    def test_values(self, value, expected):
        assert is_integer(value) is expected


class TestCheckRange:
    def test_in_range(self):
        errors = []
        assert check_range(errors, 5, 1, 10, "low", "high")
        assert errors == []

    @pytest.mark.parametrize("value,message", [(0, "low"), (11, "high")])
    def test_out_of_range(self, value, message):
        errors = []
        assert check_range(errors, value, 1, 10, "low", "high")
        assert errors == [message]

    @pytest.mark.parametrize("value", [math.nan, math.inf, "5"])
    def test_not_a_number(self, value):
        errors = []
        assert not check_range(errors, value, 1, 10, "low", "high", "not a number")
        assert errors == ["not a number"]
