import datetime as dt
from zoneinfo import ZoneInfo

import pytest

from posta.booking.adapters.datetime_helpers import parse_instant, resolve_timezone, weekday_name

UTC = dt.timezone.utc


class TestParseInstant:
    """Parses datetimes and ISO 8601 strings into aware datetimes."""

    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            ("2026-03-10T10:00:00Z", dt.datetime(2026, 3, 10, 10, 0, tzinfo=UTC)),
            ("2026-03-10T10:00:00+00:00", dt.datetime(2026, 3, 10, 10, 0, tzinfo=UTC)),
            ("2026-03-10T12:00:00+02:00", dt.datetime(2026, 3, 10, 10, 0, tzinfo=UTC)),
            ("2026-03-10T10:00", dt.datetime(2026, 3, 10, 10, 0, tzinfo=UTC)),
            ("  2026-03-10T10:00:00z ", dt.datetime(2026, 3, 10, 10, 0, tzinfo=UTC)),
            (dt.datetime(2026, 3, 10, 10, 0), dt.datetime(2026, 3, 10, 10, 0, tzinfo=UTC)),
        ],
        ids=["zulu", "utc-offset", "other-offset", "naive-string", "padded-lowercase-z", "naive-datetime"],
    )
    def test_parses(self, value: object, expected: dt.datetime) -> None:
        assert parse_instant(value) == expected

    def test_naive_values_use_given_timezone(self) -> None:
        tz = dt.timezone(dt.timedelta(hours=-5))

        result = parse_instant("2026-03-10T10:00", tz)

        assert result == dt.datetime(2026, 3, 10, 15, 0, tzinfo=UTC)

    @pytest.mark.parametrize(
        "value",
        ["", "   ", "tomorrow", "2026-13-40T10:00", None, 1741600800],
        ids=["empty", "blank", "words", "out-of-range", "none", "epoch-int"],
    )
    def test_returns_none_for_unparseable(self, value: object) -> None:
        assert parse_instant(value) is None


class TestResolveTimezone:
    def test_known_name(self) -> None:
        assert resolve_timezone("America/New_York") == ZoneInfo("America/New_York")

    def test_invalid_name_falls_back_to_utc(self) -> None:
        assert resolve_timezone("Mars/Olympus_Mons") == dt.timezone.utc


class TestWeekdayName:
    def test_uses_local_date(self) -> None:
        # Tuesday 01:00 UTC is still Monday evening in New York.
        value = dt.datetime(2026, 3, 10, 1, 0, tzinfo=UTC)

        assert weekday_name(value, UTC) == "Tuesday"
        assert weekday_name(value, ZoneInfo("America/New_York")) == "Monday"
