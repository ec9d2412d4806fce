"""Tests for decoding persisted id mappings."""

import pytest

from feather_migration.client.exceptions import PreconditionError
from feather_migration.migration.mappings import (
    MappingView,
    decode,
    decode_from_parallel_lists,
    decode_id_list,
    decode_id_table,
    resolve_mapping,
)


class TestDecodeIdList:
    @pytest.mark.parametrize(
        "value",
        [
            [5, 7, 9],
            ["5", "7", "9"],
            [5.0, 7.0, 9.0],
            "[5, 7, 9]",
            "5,7,9",
        ],
    )
    def test_accepted_shapes(self, value):
        assert decode_id_list(value) == [5, 7, 9]

    def test_non_integer_entry_rejects_the_list(self):
        assert decode_id_list([5, "seven"]) is None
        assert decode_id_list([5, 7.5]) is None

    def test_booleans_are_not_ids(self):
        assert decode_id_list([True, 2]) is None

    def test_not_a_list(self):
        assert decode_id_list({"a": 1}) is None
        assert decode_id_list(12) is None


class TestDecodeIdTable:
    @pytest.mark.parametrize(
        "value",
        [
            {"5": 5, "9": 20},
            {"5": "5", "9": "20"},
            {5: 5, 9: 20},
            '{"5": 5, "9": 20}',
            [[5, 5], [9, 20]],
        ],
    )
    def test_accepted_shapes(self, value):
        assert decode_id_table(value) == {5: 5, 9: 20}

    def test_bad_entries_are_dropped(self):
        assert decode_id_table({"5": 5, "x": 3, "9": None}) == {5: 5}

    def test_not_a_table(self):
        assert decode_id_table("garbage") is None
        assert decode_id_table([1, 2, 3]) is None


class TestDecode:
    def test_missing_key(self):
        assert decode({}, "location_to_location_mapping") == {}

    def test_unreadable_value(self):
        assert decode({"location_to_location_mapping": 42}, "location_to_location_mapping") == {}

    def test_direct_table(self):
        details = {"location_to_location_mapping": {"5": 5, "7": 7, "9": 20}}
        assert decode(details, "location_to_location_mapping") == {5: 5, 7: 7, 9: 20}


class TestParallelLists:
    def test_zip(self):
        details = {"imported_realm_ids": [1, 2], "source_nest_ids": [1, 2]}
        assert decode_from_parallel_lists(details, "imported_realm_ids", "source_nest_ids") == {
            1: 1,
            2: 2,
        }

    def test_length_mismatch_gives_empty(self):
        details = {"imported_realm_ids": [1, 2, 3], "source_nest_ids": [1, 2]}
        assert decode_from_parallel_lists(details, "imported_realm_ids", "source_nest_ids") == {}

    def test_missing_list_gives_empty(self):
        details = {"imported_realm_ids": [1, 2]}
        assert decode_from_parallel_lists(details, "imported_realm_ids", "source_nest_ids") == {}


class TestResolveMapping:
    def test_direct_table_wins(self):
        details = {
            "nest_to_realm_mapping": {"1": 11},
            "imported_realm_ids": [1],
            "source_nest_ids": [1],
        }
        view = resolve_mapping(
            details, "nest_to_realm_mapping", "imported_realm_ids", "source_nest_ids"
        )
        assert dict(view) == {1: 11}

    def test_falls_back_to_lists(self):
        details = {"imported_realm_ids": [11, 12], "source_nest_ids": ["1", "2"]}
        view = resolve_mapping(
            details, "nest_to_realm_mapping", "imported_realm_ids", "source_nest_ids"
        )
        assert dict(view) == {1: 11, 2: 12}

    def test_accepts_legacy_source_list_name(self):
        details = {"imported_realm_ids": [11], "pterodactyl_nest_ids": [1]}
        view = resolve_mapping(
            details, "nest_to_realm_mapping", "imported_realm_ids", "source_nest_ids"
        )
        assert dict(view) == {1: 11}

    def test_nothing_found(self):
        view = resolve_mapping({}, "nest_to_realm_mapping", "imported_realm_ids", "source_nest_ids")
        assert len(view) == 0


class TestMappingView:
    def test_lookups(self):
        view = MappingView("user_to_user_mapping", {2: 20})

        assert view.lookup(2) == 20
        assert view.lookup(3) is None
        assert view.lookup(None) is None
        assert view.lookup_or_original(3) == 3
        assert view.as_request_mapping() == {"2": 20}

    def test_require(self):
        assert MappingView("x", {1: 1}).require()
        with pytest.raises(PreconditionError):
            MappingView("user_to_user_mapping").require()

    def test_is_read_only(self):
        view = MappingView("x", {1: 1})
        with pytest.raises(TypeError):
            view[2] = 2  # type: ignore[index]
