import logging

import pytest

from propwatch.column_mapping import (
    FIELD_KEYS,
    auto_map,
    empty_mapping,
    match_header,
    missing_fields,
    rank_headers,
)


def test_auto_map_typical_export():
    headers = ["Addr", "PostCode", "Client", "Status", "Withdrawn"]

    mapping = auto_map(headers)

    assert mapping == {
        "address": "Addr",
        "postcode": "PostCode",
        "client_name": "Client",
        "status": "Status",
        "withdrawn_date": "Withdrawn",
    }
    assert missing_fields(mapping) == []


def test_exact_match_beats_earlier_contains():
    assert match_header("status", ["Client Status", "status"]) == "status"


def test_contains_match_takes_first_in_file_order():
    assert match_header("address", ["Full Address", "Address Line 2"]) == "Full Address"


def test_match_is_case_insensitive_and_returns_raw_header():
    assert match_header("postcode", [" POSTCODE "]) == " POSTCODE "


def test_short_headers_are_not_contained_matches():
    assert match_header("status", ["st", "id"]) is None


def test_unmatched_fields_stay_unset():
    mapping = auto_map(["Reference", "Price", "Agent"])
    assert set(mapping) == set(FIELD_KEYS)
    assert all(value is None for value in mapping.values())


def test_blank_headers_are_ignored():
    assert match_header("address", ["", "   ", "address"]) == "address"


def test_missing_fields_reports_labels_in_display_order():
    mapping = empty_mapping()
    mapping["address"] = "Addr"
    mapping["status"] = "  "

    assert missing_fields(mapping) == ["Postcode", "Client Name", "Listing Status", "Withdrawn Date"]


def test_rank_headers_best_first():
    ranked = rank_headers("postcode", ["Vendor", "Amount", "Post Code"])
    assert ranked[0] == "Post Code"
    assert sorted(ranked) == sorted(["Vendor", "Amount", "Post Code"])


def test_rank_headers_limit_and_blank_skipped():
    ranked = rank_headers("client_name", ["Client Name", "", "Client", "Notes"], limit=2)
    assert len(ranked) == 2
    assert ranked[0] == "Client Name"
    assert "" not in ranked


@pytest.mark.parametrize("key", FIELD_KEYS)
def test_rank_headers_does_not_change_auto_map(key):
    headers = ["Withdrawn", "Status", "Client", "PostCode", "Addr"]
    before = auto_map(headers)
    rank_headers(key, headers)
    assert auto_map(headers) == before


def test_partial_header_match_is_logged(caplog):
    with caplog.at_level(logging.DEBUG, logger="propwatch.column_mapping"):
        assert match_header("client_name", ["Client"]) == "Client"

    assert "client_name" in caplog.text
    assert "'Client'" in caplog.text


def test_exact_match_is_not_logged_as_partial(caplog):
    with caplog.at_level(logging.DEBUG, logger="propwatch.column_mapping"):
        match_header("status", ["Status"])

    assert caplog.text == ""
