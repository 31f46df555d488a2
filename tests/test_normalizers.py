"""
Tests for phone/date normalisation used before any call is placed.
"""
import pytest

from helpers.Normalizers import normalize_date_iso, normalize_phone, normalize_time_hhmm, phone_variants


class TestNormalizePhone:
    @pytest.mark.parametrize("raw", [
        "0412 345 678",
        "0412-345-678",
        "(04) 1234 5678",
        "+61 412 345 678",
        "61412345678",
        "412345678",
        " +61-412-345-678 ",
    ])
    def test_same_mobile_in_any_local_format(self, raw):
        assert normalize_phone(raw) == "+61412345678"

    def test_trunk_prefix_replaced_with_country_code(self):
        assert normalize_phone("042 123 456") == "+6142123456"

    def test_landline_with_area_code(self):
        assert normalize_phone("(02) 9876 5432") == "+61298765432"

    def test_short_number_starting_with_country_digits_is_domestic(self):
        # too short to already carry the country code
        assert normalize_phone("6123 4567") == "+6161234567"

    def test_other_country_with_plus_is_kept(self):
        assert normalize_phone("+1 (415) 555-0100") == "+14155550100"

    def test_region_override(self):
        assert normalize_phone("020 7946 0958", default_region="GB") == "+442079460958"

    @pytest.mark.parametrize("raw", [None, "", "   ", "--"])
    def test_empty_input(self, raw):
        assert normalize_phone(raw) == ""

    def test_phone_variants_keep_raw_and_canonical(self):
        assert phone_variants("0412 345 678") == ["0412 345 678", "+61412345678"]
        assert phone_variants("+61412345678") == ["+61412345678"]
        assert phone_variants(None) == []


class TestDatesAndTimes:
    def test_spoken_date(self):
        assert normalize_date_iso("26th of October 2025") == "2025-10-26"

    def test_day_first(self):
        assert normalize_date_iso("03/04/2026") == "2026-04-03"

    def test_unparseable_falls_back(self):
        from datetime import date
        assert normalize_date_iso("no idea", default=date(2026, 1, 2)) == "2026-01-02"

    @pytest.mark.parametrize("raw,expected", [
        ("10 a.m.", "10:00"),
        ("2:30pm", "14:30"),
        ("12am", "00:00"),
        ("09:15", "09:15"),
    ])
    def test_times(self, raw, expected):
        assert normalize_time_hhmm(raw) == expected
