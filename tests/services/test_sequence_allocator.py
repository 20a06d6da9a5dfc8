"""
Tests for SequenceAllocator.

Covers:
- Seeded counters and formatting
- Yearly and monthly resets, exactly once per period
- Stale clocks never undo a reset
- Unknown and disabled document types
- Registration, reconfiguration and preview
- Gap policy: rollback returns the number, commit consumes it
- Lock timeouts surface as retryable AllocationTimeoutError
"""

from datetime import UTC, datetime

import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from docengine.domain.numbering import ResetFrequency
from docengine.exceptions import (
    AllocationTimeoutError,
    DocumentTypeDisabledError,
    DuplicateDocumentTypeError,
    InvalidSequenceConfigError,
    UnknownDocumentTypeError,
)
from docengine.models.sequence import SequenceAllocation
from docengine_config import SequenceDefinition


def invoice_definition(**overrides) -> SequenceDefinition:
    fields = {
        "document_type": "sales_invoice",
        "prefix": "INV",
        "separator": "-",
        "number_length": 5,
        "reset_frequency": ResetFrequency.YEARLY,
    }
    fields.update(overrides)
    return SequenceDefinition(**fields)


@pytest.fixture
def seeded_invoices(session, allocator):
    """sales_invoice seeded at 7, as if migrated after INV-00006."""
    allocator.register(invoice_definition(next_number=7))
    session.commit()


@pytest.fixture
def monthly_bonds(session, allocator):
    allocator.register(
        SequenceDefinition(
            document_type="customer_bond",
            prefix="CB",
            number_length=5,
            reset_frequency=ResetFrequency.MONTHLY,
        )
    )
    session.commit()


class TestAllocation:
    def test_seeded_counter(self, allocator, seeded_invoices):
        number = allocator.allocate("sales_invoice")

        assert number.value == 7
        assert number.formatted == "INV-00007"
        assert number.next_number == 8
        assert number.period_key == "2026"
        assert allocator.get_config("sales_invoice").next_number == 8

    def test_consecutive_values(self, allocator, seeded_invoices):
        values = [allocator.allocate("sales_invoice").value for _ in range(5)]
        assert values == [7, 8, 9, 10, 11]

    def test_allocation_recorded(self, session, allocator, seeded_invoices):
        allocator.allocate("sales_invoice")
        allocator.allocate("sales_invoice")

        rows = session.execute(
            select(SequenceAllocation).order_by(SequenceAllocation.value)
        ).scalars().all()
        assert [(r.value, r.formatted, r.period_key) for r in rows] == [
            (7, "INV-00007", "2026"),
            (8, "INV-00008", "2026"),
        ]

    def test_default_set_formats(self, allocator, installed_sequences):
        assert allocator.allocate("quote").formatted == "Q-00001"
        assert allocator.allocate("journal_entry").formatted == "JE-000001"
        assert allocator.allocate("supplier_bond").formatted == "SB-00001"

    def test_types_are_independent(self, allocator, installed_sequences):
        allocator.allocate("quote")
        allocator.allocate("quote")
        assert allocator.allocate("sales_invoice").value == 1

    def test_str_is_formatted(self, allocator, seeded_invoices):
        assert str(allocator.allocate("sales_invoice")) == "INV-00007"


class TestPeriodReset:
    def test_monthly_reset_exactly_once(self, allocator, monthly_bonds, deterministic_clock):
        march = [allocator.allocate("customer_bond").value for _ in range(3)]

        deterministic_clock.set_time(datetime(2026, 4, 2, 9, 0, tzinfo=UTC))
        april_first = allocator.allocate("customer_bond")
        april_second = allocator.allocate("customer_bond")

        assert march == [1, 2, 3]
        assert april_first.value == 1
        assert april_first.period_key == "2026-04"
        assert april_first.formatted == "CB-00001"
        assert april_second.value == 2

    def test_yearly_reset_discards_seed(self, allocator, seeded_invoices, deterministic_clock):
        assert allocator.allocate("sales_invoice").value == 7

        deterministic_clock.set_time(datetime(2027, 1, 1, 0, 0, 1, tzinfo=UTC))
        number = allocator.allocate("sales_invoice")

        assert number.value == 1
        assert number.period_key == "2027"
        assert allocator.get_config("sales_invoice").last_reset_period == "2027"

    def test_stale_clock_continues_current_period(
        self, allocator, monthly_bonds, deterministic_clock, captured_logs
    ):
        deterministic_clock.set_time(datetime(2026, 4, 2, tzinfo=UTC))
        allocator.allocate("customer_bond")
        allocator.allocate("customer_bond")

        # A caller whose clock still reads March
        deterministic_clock.set_time(datetime(2026, 3, 31, 23, 59, tzinfo=UTC))
        stale = allocator.allocate("customer_bond")

        assert stale.value == 3
        assert stale.period_key == "2026-04"
        assert allocator.get_config("customer_bond").last_reset_period == "2026-04"

        stale_logs = [r for r in captured_logs() if r["message"] == "sequence_stale_period"]
        assert stale_logs
        assert stale_logs[0]["requested_period"] == "2026-03"
        assert stale_logs[0]["current_period"] == "2026-04"

    def test_never_reset(self, allocator, installed_sequences, deterministic_clock):
        allocator.allocate("journal_entry")
        deterministic_clock.set_time(datetime(2030, 1, 1, tzinfo=UTC))
        number = allocator.allocate("journal_entry")

        assert number.value == 2
        assert number.period_key == "all"

    def test_period_start_logged(self, allocator, monthly_bonds, captured_logs):
        allocator.allocate("customer_bond")
        messages = [r["message"] for r in captured_logs()]
        assert "sequence_period_started" in messages
        assert "sequence_allocated" in messages


class TestUnavailableTypes:
    def test_unknown(self, allocator):
        with pytest.raises(UnknownDocumentTypeError) as exc_info:
            allocator.allocate("delivery_note")
        assert exc_info.value.document_type == "delivery_note"

    def test_disabled(self, session, allocator, seeded_invoices):
        allocator.deactivate("sales_invoice")
        with pytest.raises(DocumentTypeDisabledError):
            allocator.allocate("sales_invoice")

    def test_disabled_does_not_consume(self, session, allocator, seeded_invoices):
        allocator.deactivate("sales_invoice")
        with pytest.raises(DocumentTypeDisabledError):
            allocator.allocate("sales_invoice")

        allocator.activate("sales_invoice")
        assert allocator.allocate("sales_invoice").value == 7

    def test_definition_inactive_at_registration(self, allocator):
        allocator.register(invoice_definition(is_active=False))
        with pytest.raises(DocumentTypeDisabledError):
            allocator.allocate("sales_invoice")


class TestAdministration:
    def test_duplicate_registration(self, allocator, seeded_invoices):
        with pytest.raises(DuplicateDocumentTypeError):
            allocator.register(invoice_definition())

    @pytest.mark.parametrize(
        "overrides",
        [
            {"number_length": 0},
            {"next_number": 0},
            {"reset_frequency": "weekly"},
            {"document_type": ""},
        ],
    )
    def test_invalid_definition(self, allocator, overrides):
        with pytest.raises(InvalidSequenceConfigError):
            allocator.register(invoice_definition(**overrides))

    def test_install_is_idempotent(self, session, allocator, engine_config):
        first = allocator.install_definitions(engine_config.sequences)
        second = allocator.install_definitions(engine_config.sequences)

        assert set(first) == {d.document_type for d in engine_config.sequences}
        assert second == []

    def test_install_keeps_live_counters(self, allocator, installed_sequences, engine_config):
        allocator.allocate("quote")
        allocator.install_definitions(engine_config.sequences)
        assert allocator.allocate("quote").value == 2

    def test_reconfigure_presentation_only(self, session, allocator, seeded_invoices):
        issued = allocator.allocate("sales_invoice")
        allocator.reconfigure("sales_invoice", prefix="FAC", separator="/", number_length=3)
        after = allocator.allocate("sales_invoice")

        assert issued.formatted == "INV-00007"
        assert after.value == 8
        assert after.formatted == "FAC/008"

        record = session.execute(
            select(SequenceAllocation).where(SequenceAllocation.value == 7)
        ).scalar_one()
        assert record.formatted == "INV-00007"

    def test_reconfigure_rejects_zero_length(self, allocator, seeded_invoices):
        with pytest.raises(InvalidSequenceConfigError):
            allocator.reconfigure("sales_invoice", number_length=0)

    def test_reconfigure_unknown(self, allocator):
        with pytest.raises(UnknownDocumentTypeError):
            allocator.reconfigure("missing", prefix="X")


class TestPreview:
    def test_preview_does_not_consume(self, allocator, seeded_invoices):
        assert allocator.preview("sales_invoice") == "INV-00007"
        assert allocator.preview("sales_invoice") == "INV-00007"
        assert allocator.allocate("sales_invoice").formatted == "INV-00007"
        assert allocator.preview("sales_invoice") == "INV-00008"

    def test_preview_after_period_change(self, allocator, seeded_invoices, deterministic_clock):
        allocator.allocate("sales_invoice")
        deterministic_clock.set_time(datetime(2027, 2, 1, tzinfo=UTC))
        assert allocator.preview("sales_invoice") == "INV-00001"


class TestGapPolicy:
    """Rollback returns the number; commit consumes it for good."""

    def test_rollback_leaves_counter_unchanged(self, session, allocator, seeded_invoices):
        first = allocator.allocate("sales_invoice")
        session.commit()

        allocator.allocate("sales_invoice")
        session.rollback()

        retried = allocator.allocate("sales_invoice")
        session.commit()

        assert first.value == 7
        assert retried.value == 8
        recorded = session.execute(select(SequenceAllocation.value)).scalars().all()
        assert sorted(recorded) == [7, 8]

    def test_committed_number_is_never_reissued(self, session, allocator, seeded_invoices):
        abandoned = allocator.allocate("sales_invoice")
        session.commit()

        following = allocator.allocate("sales_invoice")
        session.commit()

        assert following.value == abandoned.value + 1


class TestLockTimeout:
    def test_lock_timeout_is_retryable(
        self, monkeypatch, allocator, seeded_invoices, captured_logs
    ):
        def locked(session, timeout_ms):
            raise OperationalError("UPDATE sequence_configs", {}, Exception("database is locked"))

        monkeypatch.setattr(
            "docengine.services.sequence_allocator.apply_lock_timeout", locked
        )

        with pytest.raises(AllocationTimeoutError) as exc_info:
            allocator.allocate("sales_invoice")

        assert exc_info.value.retryable is True
        assert exc_info.value.timeout_ms == allocator.timeout_ms
        assert any(r["message"] == "sequence_allocation_timeout" for r in captured_logs())

    def test_other_operational_errors_propagate(self, monkeypatch, allocator, seeded_invoices):
        def broken(session, timeout_ms):
            raise OperationalError("UPDATE sequence_configs", {}, Exception("disk I/O error"))

        monkeypatch.setattr(
            "docengine.services.sequence_allocator.apply_lock_timeout", broken
        )

        with pytest.raises(OperationalError):
            allocator.allocate("sales_invoice")
