"""
Typed exception hierarchy for the document engine.

Every error has a TYPED class (catch by type, not message), a machine-readable
``code`` class attribute, and structured attributes instead of a bare message.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    DocEngineError (base)
    |
    +-- SequenceError
    |   +-- UnknownDocumentTypeError
    |   +-- DocumentTypeDisabledError
    |   +-- DuplicateDocumentTypeError
    |   +-- InvalidSequenceConfigError
    |
    +-- CalculationError
    |   +-- InvalidQuantityError
    |   +-- InvalidUnitPriceError
    |   +-- InvalidRateError
    |   +-- InvalidAmountError
    |   +-- NegativeTotalNotAllowedError
    |
    +-- JournalError
    |   +-- UnbalancedEntryError
    |   +-- MissingAccountError
    |   |   +-- EmptyEntryError
    |   +-- InvalidLineAmountError
    |   +-- InvalidStateTransitionError
    |   +-- EntryNotFoundError
    |   +-- EntryNotPostedError
    |   +-- EntryAlreadyReversedError
    |
    +-- DocumentError
    |   +-- DocumentNotFoundError
    |   +-- DocumentFinalizedError
    |
    +-- BondError
    |   +-- BondNotFoundError
    |
    +-- ConcurrencyError
    |   +-- AllocationTimeoutError
    |   +-- ValidationTimeoutError
    |
    +-- ImmutabilityError
        +-- ImmutabilityViolationError

===============================================================================
RETRY POLICY
===============================================================================

The engine never retries anything itself.  ``retryable`` tells the caller
whether an automatic retry is safe:

    AllocationTimeoutError      retryable=True   nothing was reserved
    InvalidStateTransitionError retryable=False  caller logic error, fatal
    everything else             retryable=False
"""


class DocEngineError(Exception):
    """
    Base exception for all document engine errors.

    All subclasses must define a ``code`` class attribute.
    """

    code: str = "DOC_ENGINE_ERROR"
    retryable: bool = False


# Sequence numbering


class SequenceError(DocEngineError):
    """Base exception for sequence allocation errors."""

    code: str = "SEQUENCE_ERROR"


class UnknownDocumentTypeError(SequenceError):
    """No sequence configuration exists for the document type."""

    code: str = "UNKNOWN_DOCUMENT_TYPE"

    def __init__(self, document_type: str):
        self.document_type = document_type
        super().__init__(f"No sequence configured for document type: {document_type}")


class DocumentTypeDisabledError(SequenceError):
    """Sequence configuration exists but is deactivated."""

    code: str = "DOCUMENT_TYPE_DISABLED"

    def __init__(self, document_type: str):
        self.document_type = document_type
        super().__init__(f"Sequence for document type '{document_type}' is disabled")


class DuplicateDocumentTypeError(SequenceError):
    """A sequence configuration for the document type already exists."""

    code: str = "DUPLICATE_DOCUMENT_TYPE"

    def __init__(self, document_type: str):
        self.document_type = document_type
        super().__init__(f"Sequence already registered for document type: {document_type}")


class InvalidSequenceConfigError(SequenceError):
    """Sequence configuration values are out of range."""

    code: str = "INVALID_SEQUENCE_CONFIG"

    def __init__(self, document_type: str, reason: str):
        self.document_type = document_type
        self.reason = reason
        super().__init__(f"Invalid sequence config for '{document_type}': {reason}")


# Monetary calculation


class CalculationError(DocEngineError):
    """Base exception for line and document calculation errors."""

    code: str = "CALCULATION_ERROR"


class InvalidQuantityError(CalculationError):
    """Line quantity must be strictly positive."""

    code: str = "INVALID_QUANTITY"

    def __init__(self, quantity: str):
        self.quantity = quantity
        super().__init__(f"Quantity must be greater than zero, got {quantity}")


class InvalidUnitPriceError(CalculationError):
    """Line unit price must not be negative."""

    code: str = "INVALID_UNIT_PRICE"

    def __init__(self, unit_price: str):
        self.unit_price = unit_price
        super().__init__(f"Unit price must not be negative, got {unit_price}")


class InvalidRateError(CalculationError):
    """Discount or tax rate outside 0..100."""

    code: str = "INVALID_RATE"

    def __init__(self, rate_name: str, rate: str):
        self.rate_name = rate_name
        self.rate = rate
        super().__init__(f"{rate_name} must be between 0 and 100, got {rate}")


class InvalidAmountError(CalculationError):
    """A monetary amount is not acceptable (negative, non-numeric, ...)."""

    code: str = "INVALID_AMOUNT"

    def __init__(self, field: str, amount: str, reason: str):
        self.field = field
        self.amount = amount
        self.reason = reason
        super().__init__(f"Invalid {field} {amount}: {reason}")


class NegativeTotalNotAllowedError(CalculationError):
    """
    Document total came out negative.

    Indicates a data error upstream (discount larger than the document);
    the total is never clamped silently.
    """

    code: str = "NEGATIVE_TOTAL_NOT_ALLOWED"

    def __init__(self, total: str, document_discount: str):
        self.total = total
        self.document_discount = document_discount
        super().__init__(
            f"Document total would be negative ({total}) "
            f"after document discount {document_discount}"
        )


# Journal entries


class JournalError(DocEngineError):
    """Base exception for journal entry errors."""

    code: str = "JOURNAL_ERROR"
    # Entry status read under the lock when a transition was rejected
    entry_status: str | None = None


class UnbalancedEntryError(JournalError):
    """Journal entry debits do not equal credits."""

    code: str = "UNBALANCED_ENTRY"

    def __init__(self, debits: str, credits: str):
        self.debits = debits
        self.credits = credits
        super().__init__(f"Unbalanced entry: debits={debits}, credits={credits}")


class MissingAccountError(JournalError):
    """Journal line references no account, an unknown one, or an inactive one."""

    code: str = "MISSING_ACCOUNT"

    def __init__(self, account_id: str | None, reason: str):
        self.account_id = account_id
        self.reason = reason
        super().__init__(f"Missing account {account_id}: {reason}")


class EmptyEntryError(MissingAccountError):
    """Journal entry has no lines at all."""

    code: str = "EMPTY_ENTRY"

    def __init__(self):
        super().__init__(None, "journal entry has no lines")


class InvalidLineAmountError(JournalError):
    """Journal line must carry exactly one non-zero, non-negative side."""

    code: str = "INVALID_LINE_AMOUNT"

    def __init__(self, debit_amount: str, credit_amount: str, reason: str):
        self.debit_amount = debit_amount
        self.credit_amount = credit_amount
        self.reason = reason
        super().__init__(
            f"Invalid journal line (debit={debit_amount}, credit={credit_amount}): {reason}"
        )


class InvalidStateTransitionError(JournalError):
    """
    Requested lifecycle transition is not an edge of the state machine.

    A caller logic error: never retry.
    """

    code: str = "INVALID_STATE_TRANSITION"
    retryable: bool = False

    def __init__(self, entity_type: str, current_state: str, target_state: str):
        self.entity_type = entity_type
        self.current_state = current_state
        self.target_state = target_state
        super().__init__(
            f"{entity_type} cannot move from '{current_state}' to '{target_state}'"
        )


class EntryNotFoundError(JournalError):
    """Journal entry with given ID was not found."""

    code: str = "ENTRY_NOT_FOUND"

    def __init__(self, entry_id: str):
        self.entry_id = entry_id
        super().__init__(f"Journal entry not found: {entry_id}")


class EntryNotPostedError(JournalError):
    """Only posted entries can be reversed."""

    code: str = "ENTRY_NOT_POSTED"

    def __init__(self, entry_id: str, status: str):
        self.entry_id = entry_id
        self.status = status
        super().__init__(f"Journal entry {entry_id} is {status}, not posted")


class EntryAlreadyReversedError(JournalError):
    """A reversing entry already exists for this entry."""

    code: str = "ENTRY_ALREADY_REVERSED"

    def __init__(self, entry_id: str):
        self.entry_id = entry_id
        super().__init__(f"Journal entry {entry_id} has already been reversed")


# Financial documents


class DocumentError(DocEngineError):
    """Base exception for quote/invoice errors."""

    code: str = "DOCUMENT_ERROR"


class DocumentNotFoundError(DocumentError):
    """Financial document with given ID was not found."""

    code: str = "DOCUMENT_NOT_FOUND"

    def __init__(self, document_id: str):
        self.document_id = document_id
        super().__init__(f"Document not found: {document_id}")


class DocumentFinalizedError(DocumentError):
    """Document is no longer a draft; changes need a compensating document."""

    code: str = "DOCUMENT_FINALIZED"

    def __init__(self, document_id: str, status: str):
        self.document_id = document_id
        self.status = status
        super().__init__(
            f"Document {document_id} is {status}; issue a compensating document instead"
        )


# Bonds


class BondError(DocEngineError):
    """Base exception for receipt/payment bond errors."""

    code: str = "BOND_ERROR"


class BondNotFoundError(BondError):
    """Bond with given ID was not found."""

    code: str = "BOND_NOT_FOUND"

    def __init__(self, bond_id: str):
        self.bond_id = bond_id
        super().__init__(f"Bond not found: {bond_id}")


# Concurrency


class ConcurrencyError(DocEngineError):
    """Base exception for lock-wait failures."""

    code: str = "CONCURRENCY_ERROR"


class AllocationTimeoutError(ConcurrencyError):
    """
    Sequence row lock was not obtained within the allocation timeout.

    Safe to retry: the counter was not incremented for this call.
    """

    code: str = "ALLOCATION_TIMEOUT"
    retryable: bool = True

    def __init__(self, document_type: str, timeout_ms: int):
        self.document_type = document_type
        self.timeout_ms = timeout_ms
        super().__init__(
            f"Timed out after {timeout_ms}ms allocating a number for '{document_type}'"
        )


class ValidationTimeoutError(ConcurrencyError):
    """Journal entry row lock was not obtained within the validation timeout."""

    code: str = "VALIDATION_TIMEOUT"

    def __init__(self, entry_id: str, timeout_ms: int):
        self.entry_id = entry_id
        self.timeout_ms = timeout_ms
        super().__init__(
            f"Timed out after {timeout_ms}ms waiting to transition journal entry {entry_id}"
        )


# Immutability


class ImmutabilityError(DocEngineError):
    """Base exception for immutability violations."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """Attempt to modify a record that is no longer a draft."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(f"Cannot modify {entity_type} {entity_id}: {reason}")
