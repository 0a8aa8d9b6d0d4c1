from datetime import datetime, timezone

import pytest

from mixpanel_migrator.core import (
    Deduplicator,
    NormalizedRecord,
    basic_auth_header,
    dedupe,
    iter_json_values,
    iter_text,
    lib_version_tag,
    normalize_record,
)
from mixpanel_migrator.errors import DecodeError

LIB = lib_version_tag("1.2.3")


def _raw(event="Signup", **props):
    base = {"distinct_id": "u1", "time": 1700000000, "$insert_id": "abc"}
    base.update(props)
    return {"event": event, "properties": base}


def test_iter_json_values_concatenated_and_split_pieces():
    pieces = ['{"a": 1}{"b"', ': [1, 2]}\n\n  {"c": "x', 'y"}\n']

    assert list(iter_json_values(pieces)) == [{"a": 1}, {"b": [1, 2]}, {"c": "xy"}]


def test_iter_json_values_empty_stream():
    assert list(iter_json_values([])) == []
    assert list(iter_json_values(["  \n", ""])) == []


def test_iter_json_values_malformed_value_raises():
    values = iter_json_values(['{"a": 1}\n{"b": ,}\n'])

    assert next(values) == {"a": 1}
    with pytest.raises(DecodeError):
        next(values)


def test_iter_json_values_truncated_stream_raises():
    with pytest.raises(DecodeError):
        list(iter_json_values(['{"a": 1}{"b": ']))


def test_iter_json_values_malformed_line_fails_without_reading_ahead():
    consumed = []

    def pieces():
        yield '{"b": ,}\n'
        for i in range(10_000):
            consumed.append(i)
            yield '{"a": %d}\n' % i

    with pytest.raises(DecodeError):
        list(iter_json_values(pieces()))
    assert consumed == []


def test_iter_json_values_pretty_printed_value_across_pieces():
    pieces = ['{\n  "a": 1,\n  "b": [\n', '    2\n  ]\n}\n']

    assert list(iter_json_values(pieces)) == [{"a": 1, "b": [2]}]


def test_iter_json_values_pending_value_is_bounded():
    pieces = ['{"a": "' + "x" * 10] + ["x" * 10] * 100

    with pytest.raises(DecodeError, match="exceeds 32 characters"):
        list(iter_json_values(pieces, max_pending=32))


def test_iter_text_handles_split_multibyte_characters():
    data = '{"name": "café"}'.encode("utf-8")
    split = data.index(b"\xa9")
    text = "".join(iter_text([data[:split], data[split:]]))

    assert text == '{"name": "café"}'


def test_iter_text_invalid_utf8_raises():
    with pytest.raises(DecodeError):
        list(iter_text([b"\xff\xfe{}"]))


def test_basic_auth_header():
    assert basic_auth_header("user", "pass") == {"Authorization": "Basic dXNlcjpwYXNz"}


def test_normalize_strips_and_renames_properties():
    rec = normalize_record(
        _raw(
            mp_lib="web",
            plan="pro",
            **{"$mp_api_endpoint": "api.mixpanel.com", "$mp_api_timestamp_ms": 1, "mp_processing_time_ms": 2},
        ),
        LIB,
    )

    assert rec is not None
    assert rec.event == "Signup"
    assert rec.distinct_id == "u1"
    assert rec.time == datetime(2023, 11, 14, 22, 13, 20, tzinfo=timezone.utc)
    assert rec.insert_id == "abc"
    assert rec.properties == {"$lib_version": LIB, "$lib": "web-imported", "plan": "pro"}


def test_normalize_pageview_rename():
    assert normalize_record(_raw(event="Pageview"), LIB).event == "$pageview"


@pytest.mark.parametrize(
    "props",
    [
        {"distinct_id": None},
        {"distinct_id": ""},
        {"distinct_id": 123},
        {"time": None},
        {"time": "1700000000"},
        {"time": True},
    ],
)
def test_normalize_skips_invalid_required_fields(props):
    assert normalize_record(_raw(**props), LIB) is None


def test_normalize_skips_missing_properties():
    assert normalize_record({"event": "x"}, LIB) is None
    assert normalize_record({"event": "x", "properties": []}, LIB) is None


def _rec(insert_id):
    return NormalizedRecord(
        event="e", distinct_id="u", time=datetime(2024, 1, 1, tzinfo=timezone.utc), insert_id=insert_id
    )


def test_deduplicator_first_seen_wins():
    dd = Deduplicator()
    first, again, other = _rec("a"), _rec("a"), _rec("b")

    assert dd.accept(first)
    assert not dd.accept(again)
    assert dd.accept(other)
    assert dd.duplicates == 1


def test_dedupe_never_drops_records_without_insert_id():
    records = [_rec(""), _rec(""), _rec("x"), _rec("x"), _rec("")]
    kept, duplicates = dedupe(records)

    assert len(kept) == 4
    assert duplicates == 1
    assert kept[2] is records[2]
