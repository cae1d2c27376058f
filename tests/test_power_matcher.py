"""
Test Power Matcher - lens power filtering, ranking and selection

Tests for:
- Filter text parsing (malformed text means "no filter")
- Power key parsing into single vision / bifocal records
- Tolerance filtering, ADD exclusion, exact-match ranking
- Default SPH/CYL/ADD ordering with no filters
- PowerSelection building and quantity overrun rejection
"""

import pytest

from models.power import BifocalPower, EyeSelection, FilterCriteria, PowerPick, SingleVisionPower
from services.power_matcher import (
    POWER_TOLERANCE,
    NoPowerSelectedError,
    QuantityOverrunError,
    build_criteria,
    build_power_selections,
    filter_and_rank,
    focused_index,
    match_score,
    parse_filter_value,
    parse_power_key,
    records_from_inventory,
)


def sv(sph, cyl, quantity=4):
    return SingleVisionPower(power_key=f"{sph}_{cyl}", sph=sph, cyl=cyl, quantity=quantity)


def bf(sph, cyl, add, quantity=4):
    return BifocalPower(power_key=f"{sph}_{cyl}_{add}", sph=sph, cyl=cyl, addition=add, quantity=quantity)


def keys(records):
    return [r.power_key for r in records]


class TestFilterParsing:
    """Filter box values"""

    @pytest.mark.parametrize("raw,expected", [
        ("-1.25", -1.25),
        ("+0.5", 0.5),
        (" 2 ", 2.0),
        (1.75, 1.75),
    ])
    def test_numeric_text_is_parsed(self, raw, expected):
        assert parse_filter_value(raw) == expected

    @pytest.mark.parametrize("raw", [None, "", "   ", "abc", "-", "+", ".", "1.2.3", float("nan")])
    def test_malformed_text_means_no_filter(self, raw):
        assert parse_filter_value(raw) is None

    def test_build_criteria_with_garbage_is_empty(self):
        criteria = build_criteria("abc", "", None)
        assert criteria.is_empty


class TestPowerKeyParsing:
    """Single vision vs bifocal decided at parse time"""

    def test_two_part_key_is_single_vision(self):
        record = parse_power_key("-1.25_0.5", axis=180, quantity=3)
        assert isinstance(record, SingleVisionPower)
        assert record.type == "single"
        assert (record.sph, record.cyl, record.addition) == (-1.25, 0.5, None)
        assert record.axis == 180
        assert record.quantity == 3

    def test_three_part_key_is_bifocal(self):
        record = parse_power_key("1_-0.75_2.25", quantity=2)
        assert isinstance(record, BifocalPower)
        assert record.addition == 2.25
        assert record.axis == 90

    def test_non_numeric_key_raises(self):
        with pytest.raises(ValueError):
            parse_power_key("abc_def")

    def test_display_text(self):
        assert sv(-1.25, 0).display_text == "SPH: -1.25, CYL: +0.00"
        assert bf(0.5, -0.5, 2).display_text == "SPH: +0.50, CYL: -0.50, ADD: +2.00"

    def test_records_from_inventory_skips_out_of_stock_and_bad_keys(self):
        inventory = {
            "-1_0": {"quantity": 5},
            "-1.25_0": {"quantity": 0},
            "-1.5_0": {"quantity": "2"},
            "-1.75_0": {},
            "bad_key": {"quantity": 3},
            "0_0_2": {"quantity": 1},
        }
        records = records_from_inventory(inventory, axis=45)

        assert sorted(keys(records)) == ["-1.5_0", "-1_0", "0_0_2"]
        assert all(r.quantity > 0 for r in records)
        assert all(r.axis == 45 for r in records)


class TestFilterAndRank:
    """Tolerance matching and ordering"""

    def test_no_filters_returns_everything_sorted(self):
        records = [sv(1.0, 0), sv(-2.0, -0.5), sv(-2.0, -1.0), sv(0, 0)]
        result = filter_and_rank(records, FilterCriteria())

        assert len(result) == len(records)
        assert keys(result) == ["-2.0_-1.0", "-2.0_-0.5", "0_0", "1.0_0"]

    def test_no_filters_orders_by_addition_last(self):
        records = [bf(1.0, 0, 2.5), bf(1.0, 0, 1.0), bf(1.0, 0, 2.0)]
        result = filter_and_rank(records, None)
        assert [r.addition for r in result] == [1.0, 2.0, 2.5]

    def test_input_is_not_mutated(self):
        records = [sv(1.0, 0), sv(-1.0, 0)]
        original = list(records)
        filter_and_rank(records, build_criteria(sph="1"))
        assert records == original

    def test_sph_filter_respects_tolerance(self):
        records = [sv(s / 4, 0) for s in range(-12, 13)]
        result = filter_and_rank(records, build_criteria(sph="-1.1"))

        assert result
        for r in result:
            assert abs(r.sph - -1.1) <= POWER_TOLERANCE
        # -1.0 is 0.1 away, -1.25 is 0.15 away
        assert keys(result) == ["-1.0_0"]

    def test_tolerance_boundary_is_inclusive(self):
        records = [sv(-1.0, 0), sv(-1.25, 0)]
        result = filter_and_rank(records, build_criteria(sph="-1.125"))
        assert set(keys(result)) == {"-1.0_0", "-1.25_0"}

    def test_add_filter_excludes_records_without_addition(self):
        records = [sv(1.0, 0), bf(1.0, 0, 2.0)]
        result = filter_and_rank(records, build_criteria(sph="1", add="2"))
        assert keys(result) == ["1.0_0_2.0"]

    def test_exact_match_sorts_first(self):
        records = [sv(-0.9, 0), sv(-1.0, 0), sv(-1.1, 0)]
        criteria = build_criteria(sph="-1")
        result = filter_and_rank(records, criteria)

        assert keys(result)[0] == "-1.0_0"
        assert match_score(result[0], criteria) == 0
        assert all(match_score(r, criteria) > 0 for r in result[1:])

    def test_equal_scores_fall_back_to_sph_then_cyl(self):
        records = [sv(1.125, 0), sv(0.875, -0.125), sv(0.875, 0)]
        result = filter_and_rank(records, build_criteria(sph="1", cyl="0"))
        # 0.875_0 and 1.125_0 both score 0.125; 0.875_-0.125 scores 0.25
        assert keys(result) == ["0.875_0", "1.125_0", "0.875_-0.125"]

    def test_combined_filters(self):
        records = [bf(-2.0, -0.5, 2.0), bf(-2.0, -0.5, 1.5), bf(-2.0, -0.75, 2.0), bf(-1.0, -0.5, 2.0)]
        result = filter_and_rank(records, build_criteria("-2", "-0.5", "2"))
        assert keys(result) == ["-2.0_-0.5_2.0"]

    def test_malformed_filter_is_ignored(self):
        records = [sv(1.0, 0), sv(-1.0, 0)]
        result = filter_and_rank(records, build_criteria(sph="xyz", cyl="0"))
        assert keys(result) == ["-1.0_0", "1.0_0"]

    def test_focused_index(self):
        assert focused_index([sv(0, 0)]) == 0
        assert focused_index([]) is None


class TestBuildPowerSelections:
    """Confirmed picks become invoice lines"""

    @pytest.fixture
    def lens(self):
        return {"_id": "lens-1", "brandName": "Crizal Blue", "salePrice": 1200}

    @pytest.fixture
    def records(self):
        return [sv(-1.0, 0, quantity=3), bf(1.0, 0, 2.0, quantity=1)]

    def test_both_eyes_keeps_pair_quantity(self, lens, records):
        [selection] = build_power_selections(lens, records, [PowerPick(power_key="-1.0_0", quantity=2)])

        assert selection.lens_id == "lens-1"
        assert selection.lens_name == "Crizal Blue"
        assert selection.quantity == 2
        assert selection.piece_quantity == 2
        assert selection.eye_selection == EyeSelection.BOTH
        assert selection.available_stock == 3
        assert selection.lens_type == "single"
        assert selection.addition is None
        assert selection.price == 1200

    def test_single_eye_halves_quantity(self, lens, records):
        picks = [PowerPick(power_key="1.0_0_2.0", quantity=1, eye_selection=EyeSelection.LEFT)]
        [selection] = build_power_selections(lens, records, picks)

        assert selection.quantity == 0.5
        assert selection.piece_quantity == 1
        assert selection.addition == 2.0
        assert selection.lens_type == "bifocal"

    def test_no_picks_rejected(self, lens, records):
        with pytest.raises(NoPowerSelectedError):
            build_power_selections(lens, records, [])

    def test_quantity_overrun_names_power_and_stock(self, lens, records):
        with pytest.raises(QuantityOverrunError) as exc:
            build_power_selections(lens, records, [PowerPick(power_key="-1.0_0", quantity=4)])

        assert exc.value.available == 3
        assert "SPH: -1.00, CYL: +0.00" in str(exc.value)
        assert "Available: 3" in str(exc.value)

    def test_zero_quantity_rejected(self, lens, records):
        with pytest.raises(QuantityOverrunError):
            build_power_selections(lens, records, [PowerPick(power_key="-1.0_0", quantity=0)])

    def test_one_bad_pick_rejects_all(self, lens, records):
        picks = [
            PowerPick(power_key="-1.0_0", quantity=1),
            PowerPick(power_key="1.0_0_2.0", quantity=5),
        ]
        with pytest.raises(QuantityOverrunError):
            build_power_selections(lens, records, picks)

    def test_missing_price_defaults_to_zero(self, records):
        [selection] = build_power_selections({"_id": "x"}, records, [PowerPick(power_key="-1.0_0")])
        assert selection.price == 0

    def test_repeated_power_counts_against_one_stock(self, lens, records):
        picks = [
            PowerPick(power_key="-1.0_0", quantity=2),
            PowerPick(power_key="-1.0_0", quantity=2),
        ]
        with pytest.raises(QuantityOverrunError) as exc:
            build_power_selections(lens, records, picks)
        assert exc.value.available == 3

    def test_repeated_power_within_stock_is_allowed(self, lens, records):
        picks = [
            PowerPick(power_key="-1.0_0", quantity=2, eye_selection=EyeSelection.LEFT),
            PowerPick(power_key="-1.0_0", quantity=1, eye_selection=EyeSelection.RIGHT),
        ]
        selections = build_power_selections(lens, records, picks)
        assert [s.piece_quantity for s in selections] == [2, 1]
