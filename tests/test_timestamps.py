import math

import pytest

from coin_stats.timestamps import MILLISECONDS_THRESHOLD, to_epoch_seconds


def test_equivalent_encodings_agree():
    encodings = [
        2_100_000_000_000,
        "2100000000000",
        "2100000000",
        "2036-07-18T13:20:00Z",
        2_100_000_000,
        2_100_000_000_500.0,
    ]
    assert {to_epoch_seconds(value) for value in encodings} == {2_100_000_000}


def test_digit_strings_follow_their_length():
    assert to_epoch_seconds("1754549760000") == 1_754_549_760
    assert to_epoch_seconds(" 1754548860 ") == 1_754_548_860


def test_numbers_below_threshold_are_seconds():
    assert to_epoch_seconds(1_754_548_860) == 1_754_548_860
    assert to_epoch_seconds(1_754_548_860.9) == 1_754_548_860
    assert to_epoch_seconds(MILLISECONDS_THRESHOLD) == MILLISECONDS_THRESHOLD
    assert to_epoch_seconds(MILLISECONDS_THRESHOLD + 1000) == MILLISECONDS_THRESHOLD // 1000 + 1


def test_iso_strings_with_offsets_and_naive_values():
    assert to_epoch_seconds("2025-08-07T06:41:00Z") == 1_754_548_860
    assert to_epoch_seconds("2025-08-07T08:41:00+02:00") == 1_754_548_860
    assert to_epoch_seconds("2025-08-07T06:41:00") == 1_754_548_860
    assert to_epoch_seconds("2023-11-14T22:13:20.750Z") == 1_700_000_000


@pytest.mark.parametrize(
    "text",
    [
        "Thu, 07 Aug 2025 06:41:00 GMT",
        "Thu Aug 07 2025 06:41:00 GMT+0000",
        "2025/08/07 06:41:00",
        "August 7, 2025 06:41:00 UTC",
    ],
)
def test_free_form_date_strings(text):
    assert to_epoch_seconds(text) == 1_754_548_860


@pytest.mark.parametrize(
    "value",
    [None, True, False, "", "   ", "yesterday", "not-a-timestamp", math.nan, math.inf, [], {}, object()],
)
def test_unparsable_values_yield_none(value):
    assert to_epoch_seconds(value) is None
