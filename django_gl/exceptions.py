"""
Django GL created on top of the Django Ledger engine.
Copyright© EDMA Group Inc licensed under the GPLv3 Agreement.

Errors raised by the posting engine. Everything a caller can fix (bad entries, wrong state, locked periods,
stale data) is a ValidationError subclass and carries the specific rule that was violated. Failures of the
underlying store are not recoverable by the caller and are raised as plain exceptions.
"""
from typing import Dict, List, Optional

from django.core.exceptions import ValidationError


class DjangoGLConfigurationError(Exception):
    pass


class SequencerUnavailableError(Exception):
    """
    The numbering counter could not be incremented. No journal or batch was created.
    """


class JournalValidationError(ValidationError):
    """
    Raised when the entries of a journal break one or more accounting rules.

    Attributes
    ----------
    violations: list
        The list of Violation instances returned by the entry validator.
    """

    def __init__(self, violations: List, message: Optional[str] = None):
        self.violations = list(violations)
        if message is None:
            message = '; '.join(str(v) for v in self.violations)
        super().__init__(message, code='invalid_journal')


class JournalStateError(ValidationError):
    pass


class EntryLockedError(JournalStateError):
    pass


class BatchStateError(ValidationError):
    pass


class BatchPostingError(ValidationError):
    """
    Raised when one or more member journals prevent a batch from posting. Nothing is posted.

    Attributes
    ----------
    failures: dict
        Maps the journal number of every failing member to its list of Violation instances.
    """

    def __init__(self, batch_number: str, failures: Dict[str, List], code: str = 'invalid_batch'):
        self.batch_number = batch_number
        self.failures = failures
        details = ' | '.join(
            f'{je_number}: ' + '; '.join(str(v) for v in violations)
            for je_number, violations in failures.items()
        )
        super().__init__(f'Batch {batch_number} cannot post. {details}', code=code)


class PeriodLockedError(ValidationError):
    pass


class ConcurrencyConflictError(ValidationError):
    """
    The record was changed by someone else since it was loaded. Reload and retry.
    """
