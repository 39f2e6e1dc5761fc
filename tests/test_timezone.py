from datetime import datetime, timezone

import pytest

from iptv_epg.utils.timezone import (
    DateFormatError,
    parse_xmltv_time,
    to_epoch_seconds,
    to_iso8601,
)


@pytest.mark.parametrize("raw,expected", [
    ("20250101120000 +0000", datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)),
    ("20250101120000 +0100", datetime(2025, 1, 1, 11, 0, tzinfo=timezone.utc)),
    ("20250101120000 -0530", datetime(2025, 1, 1, 17, 30, tzinfo=timezone.utc)),
    ("20250101120000+0200", datetime(2025, 1, 1, 10, 0, tzinfo=timezone.utc)),
    ("20250101120000", datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)),
    ("202501011200 Z", datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)),
    ("20250101", datetime(2025, 1, 1, tzinfo=timezone.utc)),
])
def test_parse_xmltv_time(raw: str, expected: datetime):
    assert parse_xmltv_time(raw) == expected


@pytest.mark.parametrize("raw", ["", "   ", "2025", "20251301120000 +0000", "tomorrow"])
def test_parse_xmltv_time_rejects_garbage(raw: str):
    with pytest.raises(DateFormatError):
        parse_xmltv_time(raw)


def test_iso8601_and_epoch_rendering():
    value = parse_xmltv_time("20250101120000 +0000")

    assert to_iso8601(value) == "2025-01-01T12:00:00.000Z"
    assert to_epoch_seconds(value) == 1735732800


@pytest.mark.parametrize("raw", ["99991231235959 -1400", "00010101000000 +0100"])
def test_parse_xmltv_time_out_of_range(raw: str):
    with pytest.raises(DateFormatError):
        parse_xmltv_time(raw)
