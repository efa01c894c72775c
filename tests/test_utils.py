import threading
import time

import pytest

from polysub.exceptions import MalformedTimestamp, TransportFailure
from polysub.utils import call_with_deadline, chunked, format_timestamp, parse_timestamp


@pytest.mark.parametrize(
    "text",
    ["00:00:00,000", "00:00:01,500", "01:02:03,004", "23:59:59,999", "24:00:00,000", "123:45:06,789"],
)
def test_timestamp_round_trip(text):
    assert format_timestamp(parse_timestamp(text)) == text


def test_parse_timestamp_values():
    assert parse_timestamp("01:02:03,004") == 3_723_004
    assert parse_timestamp("00:00:10,000") == 10_000


def test_parse_timestamp_accepts_vtt_forms():
    assert parse_timestamp("00:00:01.500") == 1500
    assert parse_timestamp("01:02.003") == 62_003


@pytest.mark.parametrize("text", ["", "1:2:3", "00:00:00", "00:60:00,000", "00:00:00,12", "aa:bb:cc,ddd", None])
def test_parse_timestamp_rejects_malformed(text):
    with pytest.raises(MalformedTimestamp):
        parse_timestamp(text)


def test_malformed_timestamp_is_value_error():
    with pytest.raises(ValueError):
        parse_timestamp("nope")


def test_format_timestamp_rollover():
    assert format_timestamp(999) == "00:00:00,999"
    assert format_timestamp(1000) == "00:00:01,000"
    assert format_timestamp(59_999) == "00:00:59,999"
    assert format_timestamp(60_000) == "00:01:00,000"
    assert format_timestamp(3_600_000) == "01:00:00,000"
    assert format_timestamp(25 * 3_600_000 + 61_001) == "25:01:01,001"


def test_format_timestamp_clamps_negative():
    assert format_timestamp(-20) == "00:00:00,000"


def test_chunked_keeps_order_and_short_tail():
    assert chunked(list(range(7)), 3) == [[0, 1, 2], [3, 4, 5], [6]]
    assert chunked([], 3) == []


def test_chunked_rejects_non_positive_size():
    with pytest.raises(ValueError):
        chunked([1], 0)


def test_call_with_deadline_returns_value():
    assert call_with_deadline(lambda a, b: a + b, 5, 2, b=3) == 5


def test_call_with_deadline_propagates_errors():
    def boom():
        raise RuntimeError("bad")

    with pytest.raises(RuntimeError):
        call_with_deadline(boom, 5)


def test_call_with_deadline_times_out():
    release = threading.Event()

    def hang():
        release.wait(5)
        return "late"

    started = time.monotonic()
    try:
        with pytest.raises(TransportFailure):
            call_with_deadline(hang, 0.05)
    finally:
        release.set()
    assert time.monotonic() - started < 2
