"""Tests for formatting helpers."""

import pytest

from motorcache.utils import format_duration, format_size, format_timestamp


@pytest.mark.parametrize(
    "size, expected",
    [(0, "0 B"), (1023, "1023 B"), (2048, "2.0 KB"), (5 * 1024 * 1024, "5.0 MB")],
)
def test_format_size(size, expected):
    assert format_size(size) == expected


def test_format_timestamp():
    assert format_timestamp(0) == "1970-01-01 00:00"
    assert format_timestamp(None) == ""


@pytest.mark.parametrize(
    "seconds, expected",
    [(None, ""), (-3, "0s"), (42, "42s"), (125, "2m"), (7200, "2h"), (259200, "3d")],
)
def test_format_duration(seconds, expected):
    assert format_duration(seconds) == expected
