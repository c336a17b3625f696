"""Tests for logical/device key translation."""

from __future__ import annotations

import logging

import pytest

from surfacelink.grid import (
    COLS,
    IDENTITY_LAYOUT,
    MAX_BUTTONS,
    DeviceLayout,
    bank_to_key,
    key_to_bank,
    legacy_fifteen_to_current,
    to_device_key,
    to_global_key,
)


class TestDeviceLayout:
    def test_identity(self):
        assert IDENTITY_LAYOUT == DeviceLayout(32, 8)
        assert IDENTITY_LAYOUT.is_identity
        assert not DeviceLayout(15, 5).is_identity

    def test_rows(self):
        assert DeviceLayout(15, 5).rows == 3
        assert DeviceLayout(6, 3).rows == 2

    def test_row_wider_than_grid_rejected(self):
        with pytest.raises(ValueError):
            DeviceLayout(18, 9)

    def test_total_not_multiple_of_row_rejected(self):
        with pytest.raises(ValueError):
            DeviceLayout(15, 4)

    def test_zero_row_rejected(self):
        with pytest.raises(ValueError):
            DeviceLayout(0, 0)


class TestToDeviceKey:
    def test_identity_layout_passes_every_key(self):
        for key in range(MAX_BUTTONS):
            assert to_device_key(IDENTITY_LAYOUT, key) == key

    def test_full_grid_example(self):
        assert to_device_key(DeviceLayout(32, 8), 10) == 10

    def test_fifteen_key_example(self):
        # row 1, col 2 -> 1 * 5 + 2
        assert to_device_key(DeviceLayout(15, 5), 10) == 7

    def test_first_row(self):
        layout = DeviceLayout(15, 5)
        assert [to_device_key(layout, k) for k in range(5)] == [0, 1, 2, 3, 4]

    def test_columns_past_device_width_are_cropped(self):
        layout = DeviceLayout(15, 5)
        assert [to_device_key(layout, k) for k in range(5, 8)] == [-1, -1, -1]

    def test_boundary_column_equal_to_width(self):
        # col == keys_per_row is already off the device
        layout = DeviceLayout(15, 5)
        assert to_device_key(layout, 5) == -1
        assert to_device_key(layout, 13) == -1
        assert to_device_key(layout, 4) == 4
        assert to_device_key(layout, 12) == 9

    def test_rows_past_device_height(self):
        layout = DeviceLayout(15, 5)
        assert to_device_key(layout, 16) == 10
        assert to_device_key(layout, 24) == -1

    def test_narrow_device(self):
        layout = DeviceLayout(6, 3)
        assert to_device_key(layout, 8) == 3
        assert to_device_key(layout, 11) == -1


class TestToGlobalKey:
    def test_fifteen_key_rows(self):
        assert to_global_key(5, 0) == 0
        assert to_global_key(5, 5) == 8
        assert to_global_key(5, 14) == 20

    def test_full_width_is_identity(self):
        for key in range(MAX_BUTTONS):
            assert to_global_key(COLS, key) == key

    @pytest.mark.parametrize("layout", [
        DeviceLayout(15, 5),
        DeviceLayout(6, 3),
        DeviceLayout(8, 4),
        DeviceLayout(32, 8),
        DeviceLayout(24, 8),
    ])
    def test_round_trip(self, layout):
        for device_key in range(layout.keys_total):
            key = to_global_key(layout.keys_per_row, device_key)
            assert to_device_key(layout, key) == device_key


class TestLegacyFifteenToCurrent:
    def test_formula_values(self):
        assert legacy_fifteen_to_current(1) == 1
        assert legacy_fifteen_to_current(5) == 5
        assert legacy_fifteen_to_current(6) == 9
        assert legacy_fifteen_to_current(11) == 17
        assert legacy_fifteen_to_current(15) == 21

    def test_all_legacy_banks_distinct_and_in_grid(self):
        mapped = [legacy_fifteen_to_current(b) for b in range(1, 16)]
        assert len(set(mapped)) == 15
        assert all(1 <= m < MAX_BUTTONS for m in mapped)

    def test_overflow_clamps_and_warns(self, caplog):
        with caplog.at_level(logging.WARNING, logger="surfacelink.grid"):
            assert legacy_fifteen_to_current(25) == MAX_BUTTONS - 1
        assert "bigger pages than expected" in caplog.text


class TestBankNumbering:
    def test_bank_key_conversion(self):
        assert bank_to_key(1) == 0
        assert key_to_bank(0) == 1
        assert key_to_bank(bank_to_key(32)) == 32
