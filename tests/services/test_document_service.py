"""
Tests for DocumentService: numbered quotes, invoices and credit notes.

Covers:
- Creation draws the number from the sequence named after the kind
- Totals are aggregated before a number is consumed
- Draft edits (lines, discount) and the issued/cancelled lifecycle
- Issued documents are frozen
- Compensation of an issued invoice by a credit note
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from docengine.domain.document import DocumentKind, DocumentStatus
from docengine.domain.line_calculator import DocumentLineSpec
from docengine.exceptions import (
    DocumentFinalizedError,
    DocumentNotFoundError,
    ImmutabilityViolationError,
    InvalidAmountError,
    InvalidStateTransitionError,
    NegativeTotalNotAllowedError,
)


def line_spec(quantity, unit_price, discount_rate="0", tax_rate="0", description=None):
    return DocumentLineSpec(
        quantity=Decimal(str(quantity)),
        unit_price=Decimal(str(unit_price)),
        discount_rate=Decimal(str(discount_rate)),
        tax_rate=Decimal(str(tax_rate)),
        description=description,
    )


@pytest.fixture
def draft_invoice(document_service):
    return document_service.create(
        DocumentKind.SALES_INVOICE,
        [line_spec(3, 100, 10, 15, "Consulting"), line_spec(1, 50, description="Travel")],
        issue_date=date(2026, 3, 1),
        party_id=uuid4(),
    )


@pytest.fixture
def issued_invoice(document_service, draft_invoice):
    return document_service.issue(draft_invoice.id)


class TestCreate:
    def test_numbered_from_kind_sequence(self, document_service):
        invoice = document_service.create(DocumentKind.SALES_INVOICE, [line_spec(1, 10)])
        quote = document_service.create(DocumentKind.QUOTE, [line_spec(1, 10)])
        second = document_service.create("sales_invoice", [line_spec(1, 10)])

        assert invoice.document_number == "INV-00001"
        assert quote.document_number == "Q-00001"
        assert second.document_number == "INV-00002"
        assert second.sequence_period == "2026"

    def test_totals_stored(self, draft_invoice):
        assert draft_invoice.subtotal == Decimal("350.00")
        assert draft_invoice.line_discount_total == Decimal("30.00")
        assert draft_invoice.tax_amount == Decimal("40.50")
        assert draft_invoice.total_amount == Decimal("360.50")
        assert draft_invoice.status == DocumentStatus.DRAFT.value
        assert draft_invoice.totals_fingerprint

    def test_lines_stored_rounded(self, draft_invoice):
        lines = draft_invoice.lines
        assert [line.line_number for line in lines] == [1, 2]
        assert lines[0].line_total == Decimal("310.50")
        assert lines[0].description == "Consulting"

    def test_issue_date_defaults_to_clock(self, document_service):
        quote = document_service.create(DocumentKind.QUOTE, [line_spec(1, 1)])
        assert quote.issue_date == date(2026, 3, 15)

    def test_negative_total_consumes_no_number(self, document_service, allocator):
        with pytest.raises(NegativeTotalNotAllowedError):
            document_service.create(
                DocumentKind.SALES_INVOICE,
                [line_spec(1, 10)],
                discount_amount=Decimal("10.01"),
            )
        assert allocator.preview("sales_invoice") == "INV-00001"

    def test_invalid_discount(self, document_service):
        with pytest.raises(InvalidAmountError):
            document_service.create(DocumentKind.QUOTE, [line_spec(1, 10)], discount_amount="ten")

    def test_created_log_carries_context(self, document_service, captured_logs):
        document_service.create(DocumentKind.QUOTE, [line_spec(1, 10)])
        created = [r for r in captured_logs() if r["message"] == "document_created"]
        assert created[0]["document_type"] == "quote"
        assert created[0]["document_number"] == "Q-00001"


class TestDraftEdits:
    def test_replace_lines(self, document_service, draft_invoice):
        updated = document_service.replace_lines(draft_invoice.id, [line_spec(2, 25, tax_rate=10)])

        assert [line.line_number for line in updated.lines] == [1]
        assert updated.subtotal == Decimal("50.00")
        assert updated.total_amount == Decimal("55.00")

    def test_set_discount(self, document_service, draft_invoice):
        updated = document_service.set_discount(draft_invoice.id, "60.50")

        assert updated.discount_amount == Decimal("60.50")
        assert updated.total_amount == Decimal("300.00")

    def test_set_discount_negative_total(self, document_service, draft_invoice):
        with pytest.raises(NegativeTotalNotAllowedError):
            document_service.set_discount(draft_invoice.id, "1000")

    def test_totals_recomputed_match_stored(self, document_service, draft_invoice):
        totals = document_service.totals(draft_invoice.id)
        assert totals.total_amount == draft_invoice.total_amount
        assert totals.fingerprint() == draft_invoice.totals_fingerprint


class TestLifecycle:
    def test_issue(self, issued_invoice, deterministic_clock):
        assert issued_invoice.status == DocumentStatus.ISSUED.value
        assert issued_invoice.issued_at == deterministic_clock.now()
        assert issued_invoice.total_amount == Decimal("360.50")

    def test_issue_without_lines(self, document_service):
        empty = document_service.create(DocumentKind.QUOTE, [])
        with pytest.raises(InvalidAmountError):
            document_service.issue(empty.id)

    def test_cancel_draft(self, document_service, draft_invoice):
        cancelled = document_service.cancel(draft_invoice.id)
        assert cancelled.status == DocumentStatus.CANCELLED.value

    def test_cancel_keeps_number_consumed(self, document_service, draft_invoice):
        document_service.cancel(draft_invoice.id)
        following = document_service.create(DocumentKind.SALES_INVOICE, [line_spec(1, 1)])
        assert following.document_number == "INV-00002"

    def test_issued_cannot_be_cancelled(self, document_service, issued_invoice):
        with pytest.raises(InvalidStateTransitionError) as exc_info:
            document_service.cancel(issued_invoice.id)
        assert exc_info.value.current_state == "issued"

    def test_issue_twice(self, document_service, issued_invoice):
        with pytest.raises(InvalidStateTransitionError):
            document_service.issue(issued_invoice.id)

    def test_not_found(self, document_service):
        with pytest.raises(DocumentNotFoundError):
            document_service.get(uuid4())


class TestIssuedDocumentsFrozen:
    def test_replace_lines_rejected(self, document_service, issued_invoice):
        with pytest.raises(DocumentFinalizedError):
            document_service.replace_lines(issued_invoice.id, [line_spec(1, 1)])

    def test_set_discount_rejected(self, document_service, issued_invoice):
        with pytest.raises(DocumentFinalizedError):
            document_service.set_discount(issued_invoice.id, "1")

    def test_direct_field_edit_blocked(self, session, issued_invoice):
        issued_invoice.total_amount = Decimal("1.00")
        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_direct_line_edit_blocked(self, session, issued_invoice):
        issued_invoice.lines[0].unit_price = Decimal("1")
        with pytest.raises(ImmutabilityViolationError):
            session.flush()


class TestCompensation:
    def test_credit_note_mirrors_invoice(self, document_service, issued_invoice):
        credit_note = document_service.compensate(issued_invoice.id)

        assert credit_note.kind == DocumentKind.CREDIT_NOTE.value
        assert credit_note.document_number == "CN-00001"
        assert credit_note.status == DocumentStatus.DRAFT.value
        assert credit_note.compensates_id == issued_invoice.id
        assert credit_note.party_id == issued_invoice.party_id
        assert credit_note.total_amount == issued_invoice.total_amount
        assert len(credit_note.lines) == len(issued_invoice.lines)
        assert credit_note.notes == f"Compensates {issued_invoice.document_number}"

    def test_original_untouched(self, document_service, issued_invoice):
        document_service.compensate(issued_invoice.id)
        assert document_service.get(issued_invoice.id).status == DocumentStatus.ISSUED.value

    def test_draft_cannot_be_compensated(self, document_service, draft_invoice):
        with pytest.raises(InvalidStateTransitionError):
            document_service.compensate(draft_invoice.id)

    def test_quote_cannot_be_compensated(self, document_service):
        quote = document_service.create(DocumentKind.QUOTE, [line_spec(1, 10)])
        document_service.issue(quote.id)
        with pytest.raises(InvalidStateTransitionError):
            document_service.compensate(quote.id)
