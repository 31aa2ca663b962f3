"""Ledger arithmetic and value rules (inventory_kernel.domain.values)."""

from decimal import Decimal

import pytest

from inventory_kernel.domain.values import (
    LotStatus,
    TransactionReason,
    TransactionType,
    apply_effect,
    parse_reason,
    parse_status,
    parse_transaction_type,
    require_whole_quantity,
    signed_delta,
    terminal_status_for,
    validate_quantity_effect,
)
from inventory_kernel.exceptions import ValidationError


class TestValidateQuantityEffect:

    @pytest.mark.parametrize(
        "transaction_type, quantity, before, after",
        [
            (TransactionType.INBOUND, 10, 0, 10),
            (TransactionType.RETURN, 5, 20, 25),
            (TransactionType.OUTBOUND, 20, 50, 30),
            (TransactionType.DISPOSAL, 10, 10, 0),
            (TransactionType.ADJUSTMENT, 3, 10, 7),
            (TransactionType.ADJUSTMENT, 4, 10, 14),
            (TransactionType.TRANSFER, 12, 12, 12),
        ],
    )
    def test_consistent_entries_accepted(self, transaction_type, quantity, before, after):
        validate_quantity_effect(transaction_type, quantity, before, after)

    @pytest.mark.parametrize(
        "transaction_type, quantity, before, after",
        [
            (TransactionType.INBOUND, 10, 0, 9),
            (TransactionType.OUTBOUND, 20, 50, 40),
            (TransactionType.DISPOSAL, 10, 10, 10),
            (TransactionType.ADJUSTMENT, 5, 10, 7),
            (TransactionType.TRANSFER, 12, 12, 0),
        ],
    )
    def test_inconsistent_entries_rejected(self, transaction_type, quantity, before, after):
        with pytest.raises(ValidationError):
            validate_quantity_effect(transaction_type, quantity, before, after)

    def test_non_positive_quantity_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_quantity_effect(TransactionType.INBOUND, 0, 0, 0)
        assert exc_info.value.field == "quantity"

    def test_negative_after_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_quantity_effect(TransactionType.OUTBOUND, 5, 3, -2)
        assert exc_info.value.field == "after_quantity"

    @pytest.mark.parametrize("quantity", [2.5, Decimal("2"), True])
    def test_non_integer_quantity_rejected(self, quantity):
        with pytest.raises(ValidationError) as exc_info:
            validate_quantity_effect(TransactionType.OUTBOUND, quantity, 10, 10 - quantity)
        assert exc_info.value.field == "quantity"

    def test_non_integer_snapshot_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_quantity_effect(TransactionType.INBOUND, 2, 0.5, 2.5)
        assert exc_info.value.field == "before_quantity"

    def test_adjustment_with_equal_snapshots_keeps_magnitude(self):
        # A compensating entry for a transfer has before == after
        validate_quantity_effect(TransactionType.ADJUSTMENT, 12, 12, 12)


class TestEffects:

    def test_signed_delta_by_direction(self):
        assert signed_delta(TransactionType.INBOUND, 5) == 5
        assert signed_delta(TransactionType.RETURN, 5) == 5
        assert signed_delta(TransactionType.OUTBOUND, 5) == -5
        assert signed_delta(TransactionType.DISPOSAL, 5) == -5
        assert signed_delta(TransactionType.TRANSFER, 5) == 0
        assert signed_delta(TransactionType.ADJUSTMENT, 5) is None

    def test_apply_effect_adjustment_sets_absolute_value(self):
        assert apply_effect(40, TransactionType.ADJUSTMENT, 15, 25) == 25

    def test_apply_effect_directional(self):
        assert apply_effect(40, TransactionType.OUTBOUND, 15, 25) == 25
        assert apply_effect(40, TransactionType.INBOUND, 15, 55) == 55


class TestTerminalStatus:

    def test_damaged_reason_maps_to_damaged(self):
        assert terminal_status_for(TransactionReason.DAMAGED) == LotStatus.DAMAGED

    @pytest.mark.parametrize("reason", [TransactionReason.EXPIRED, TransactionReason.LOST])
    def test_other_disposal_reasons_map_to_expired(self, reason):
        assert terminal_status_for(reason) == LotStatus.EXPIRED

    def test_enum_values_round_trip_from_storage(self):
        assert LotStatus("quarantine") is LotStatus.QUARANTINE
        assert TransactionType("transfer") is TransactionType.TRANSFER


class TestInputParsing:

    def test_whole_quantity_accepted(self):
        assert require_whole_quantity("quantity", 3) == 3
        assert require_whole_quantity("quantity", 0, minimum=0) == 0

    @pytest.mark.parametrize("value", [None, 1.0, 2.5, Decimal("1"), "1", False, True])
    def test_non_integers_rejected(self, value):
        with pytest.raises(ValidationError) as exc_info:
            require_whole_quantity("quantity", value, minimum=0)
        assert exc_info.value.field == "quantity"

    def test_below_minimum_rejected(self):
        with pytest.raises(ValidationError):
            require_whole_quantity("quantity", 0)

    def test_parse_accepts_members_and_values(self):
        assert parse_reason("lost") is TransactionReason.LOST
        assert parse_reason(TransactionReason.DAMAGED) is TransactionReason.DAMAGED
        assert parse_status("quarantine") is LotStatus.QUARANTINE
        assert parse_transaction_type("outbound") is TransactionType.OUTBOUND

    def test_unknown_values_become_validation_errors(self):
        with pytest.raises(ValidationError) as reason_error:
            parse_reason("disposal")
        with pytest.raises(ValidationError) as status_error:
            parse_status("bogus")
        with pytest.raises(ValidationError) as type_error:
            parse_transaction_type("sale")

        assert reason_error.value.field == "reason"
        assert status_error.value.field == "status"
        assert type_error.value.field == "transaction_type"
