# tests/test_candles.py
import json

import pytest

from candles import Candle, CandleSeries, ingest, normalize, normalize_batch, parse_stream_message
from errors import FeedMismatch, MalformedCandle
from conftest import make_candle


def ws_message(etime="1700000060.000000", o="100.0", h="101.0", l="99.0", c="100.5",
               pair="XBT/USD", channel="ohlc-1"):
    body = ["1700000031.250000", etime, o, h, l, c, "100.2", "3.5", 12]
    return json.dumps([42, body, channel, pair])


def test_normalize_converts_seconds_to_milliseconds():
    candle = normalize([1700000000, "100.0", "101.5", "99.5", "100.5", "100.2", "1.0", 3])
    assert candle == Candle(1_700_000_000_000, 100.0, 101.5, 99.5, 100.5)


def test_normalize_accepts_numbers():
    candle = normalize((1700000000.5, 1, 2, 0.5, 1.5))
    assert candle.timestamp == 1_700_000_000_500
    assert candle.close == 1.5


@pytest.mark.parametrize("row", [
    [1700000000, "abc", "101", "99", "100"],
    [1700000000, "100", "101", "99"],
    [None, "100", "101", "99", "100"],
    [1700000000, "100", "nan", "99", "100"],
    [1700000000, "100", "99", "101", "100"],   # high below low
    [1700000000, "105", "101", "99", "100"],   # open above high
    "not a row",
])
def test_normalize_rejects_malformed_rows(row):
    with pytest.raises(MalformedCandle):
        normalize(row)


def test_normalize_batch_drops_bad_rows_and_sorts():
    rows = [
        [1700000120, "3", "4", "2", "3"],
        [1700000000, "1", "2", "0.5", "1.5"],
        [1700000060, "x", "4", "2", "3"],
    ]
    candles = normalize_batch(rows)
    assert [c.timestamp for c in candles] == [1_700_000_000_000, 1_700_000_120_000]


def test_parse_stream_message_keys_bar_by_start_time():
    candle = parse_stream_message(ws_message(), "XBT/USD")
    assert candle == Candle(1_700_000_000_000, 100.0, 101.0, 99.0, 100.5)


def test_parse_stream_message_uses_channel_interval():
    candle = parse_stream_message(ws_message(etime="1700000300.000000", channel="ohlc-5"), "XBT/USD")
    assert candle.timestamp == 1_700_000_000_000


@pytest.mark.parametrize("channel", ["book-10", "ohlc-", "ohlc-0", 7])
def test_parse_stream_message_non_ohlc_channel_is_mismatch(channel):
    with pytest.raises(FeedMismatch):
        parse_stream_message(ws_message(channel=channel), "XBT/USD")


def test_streamed_update_replaces_seeded_rest_bar():
    rows = [[1_700_000_000 + 60 * i, "100", "101", "99", "100.5"] for i in range(6)]
    series = CandleSeries(10, normalize_batch(rows))
    last_start = rows[-1][0]

    update = parse_stream_message(ws_message(etime=f"{last_start + 60}.000000", h="102.0"), "XBT/USD")
    series.ingest(update)

    assert len(series) == 6
    assert series.last.timestamp == last_start * 1000
    assert series.last.high == 102.0


def test_parse_stream_message_other_pair_is_mismatch():
    with pytest.raises(FeedMismatch):
        parse_stream_message(ws_message(pair="ETH/USD"), "XBT/USD")


def test_parse_stream_message_heartbeat_is_mismatch():
    with pytest.raises(FeedMismatch):
        parse_stream_message(json.dumps({"event": "heartbeat"}), "XBT/USD")


def test_parse_stream_message_invalid_json_is_malformed():
    with pytest.raises(MalformedCandle):
        parse_stream_message("{not json", "XBT/USD")


def test_parse_stream_message_bad_number_is_malformed():
    with pytest.raises(MalformedCandle):
        parse_stream_message(ws_message(h="lots"), "XBT/USD")


def test_ingest_same_timestamp_replaces_last_in_place():
    series = CandleSeries(5, [make_candle(0, 9, 10), make_candle(1, 9, 10)])
    update = make_candle(1, 8, 11)
    ingest(series, update)
    assert len(series) == 2
    assert series.last == update


def test_ingest_new_timestamp_appends_and_trims_oldest():
    series = CandleSeries(3)
    for i in range(4):
        series.ingest(make_candle(i, 9, 10))
    assert len(series) == 3
    assert [c.timestamp for c in series] == [make_candle(i, 9, 10).timestamp for i in (1, 2, 3)]


def test_ingest_ignores_out_of_order_candle():
    series = CandleSeries(5, [make_candle(0, 9, 10), make_candle(2, 9, 10)])
    before = series.to_list()
    series.ingest(make_candle(1, 5, 6))
    assert series.to_list() == before


def test_series_requires_positive_bar_count():
    with pytest.raises(ValueError):
        CandleSeries(0)
