"""
Django GL created on top of the Django Ledger engine.
Copyright© EDMA Group Inc licensed under the GPLv3 Agreement.

The entry validator enforces the fundamental accounting invariant (DEBITs equal CREDITs) and the structural rules
of every entry. It is a pure function over a journal and its current set of entries: nothing is written.

Checks run in this order:
    1. Every entry references an existing, active account (Chart of Accounts provider).
    2. Every entry has exactly one non-zero, non-negative side.
    3. Line numbers are unique and dense from 1.
    4. The sum of DEBITs equals the sum of CREDITs, in integer cents.

Structural violations (1-3) are all reported together and the balance check only runs once the structure is
valid, since the totals of a malformed journal are meaningless.
"""
from collections import Counter
from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, List, Optional, Union

from django_gl.models.utils import to_cents, from_cents, parse_amount
from django_gl.providers import ChartOfAccountsProvider, get_coa_provider

EMPTY_JOURNAL = 'empty_journal'
ACCOUNT_NOT_FOUND = 'account_not_found'
ACCOUNT_INACTIVE = 'account_inactive'
INVALID_AMOUNT = 'invalid_amount'
BOTH_SIDES = 'both_sides'
ZERO_ENTRY = 'zero_entry'
DUPLICATE_LINE = 'duplicate_line'
LINE_GAP = 'line_gap'
UNBALANCED = 'unbalanced'
PERIOD_LOCKED = 'period_locked'

STRUCTURAL_CODES = {
    ACCOUNT_NOT_FOUND,
    ACCOUNT_INACTIVE,
    INVALID_AMOUNT,
    BOTH_SIDES,
    ZERO_ENTRY,
    DUPLICATE_LINE,
    LINE_GAP
}


@dataclass(frozen=True)
class Violation:
    code: str
    message: str
    line_number: Optional[int] = None

    def __str__(self):
        if self.line_number is not None:
            return f'Line {self.line_number}: {self.message}'
        return self.message

    def is_structural(self) -> bool:
        return self.code in STRUCTURAL_CODES


def validate_entry_values(debit_amount: Union[Decimal, int, str],
                          credit_amount: Union[Decimal, int, str],
                          line_number: Optional[int] = None) -> List[Violation]:
    """
    Validates the amounts of a single entry. Amounts must be finite, non-negative and expressed in whole cents.

    Parameters
    ----------
    debit_amount: Decimal
        The DEBIT side of the entry.
    credit_amount: Decimal
        The CREDIT side of the entry.
    line_number: int
        Optional line number included in the violations.

    Returns
    -------
    list
        A list of Violation. Empty if the amounts are valid.
    """
    try:
        debit_cents = to_cents(parse_amount(debit_amount))
        credit_cents = to_cents(parse_amount(credit_amount))
    except ValueError as e:
        return [Violation(
            code=INVALID_AMOUNT,
            message=str(e),
            line_number=line_number
        )]

    if debit_cents < 0 or credit_cents < 0:
        return [Violation(
            code=INVALID_AMOUNT,
            message='Debit and credit amounts cannot be negative.',
            line_number=line_number
        )]
    if debit_cents and credit_cents:
        return [Violation(
            code=BOTH_SIDES,
            message='An entry must be either a debit or a credit, not both.',
            line_number=line_number
        )]
    if not debit_cents and not credit_cents:
        return [Violation(
            code=ZERO_ENTRY,
            message='An entry must have a non-zero debit or credit amount.',
            line_number=line_number
        )]
    return list()


def validate_line_numbers(line_numbers: Iterable[int]) -> List[Violation]:
    line_numbers = list(line_numbers)
    counts = Counter(line_numbers)
    duplicates = sorted(ln for ln, c in counts.items() if c > 1)
    if duplicates:
        return [
            Violation(code=DUPLICATE_LINE,
                      message=f'Line number {ln} is used by {counts[ln]} entries.',
                      line_number=ln)
            for ln in duplicates
        ]
    if sorted(line_numbers) != list(range(1, len(line_numbers) + 1)):
        return [Violation(
            code=LINE_GAP,
            message=f'Line numbers must run from 1 to {len(line_numbers)} without gaps.'
        )]
    return list()


def validate_balance(entries) -> List[Violation]:
    debit_cents = sum(to_cents(e.debit_amount) for e in entries)
    credit_cents = sum(to_cents(e.credit_amount) for e in entries)
    if debit_cents != credit_cents:
        diff = from_cents(abs(debit_cents - credit_cents))
        return [Violation(
            code=UNBALANCED,
            message=f'Journal is unbalanced by {diff}: debits {from_cents(debit_cents)} '
                    f'!= credits {from_cents(credit_cents)}.'
        )]
    return list()


def validate_journal(journal_model,
                     entries: Optional[Iterable] = None,
                     coa_provider: Optional[ChartOfAccountsProvider] = None) -> List[Violation]:
    """
    Runs every entry check over a journal.

    Parameters
    ----------
    journal_model: JournalModel
        The journal being validated. Its tenant_id is used for account lookups.
    entries: iterable
        Optional EntryModel instances (saved or not) to validate instead of the persisted entries. Allows
        pre-submission checks of a journal being edited.
    coa_provider: ChartOfAccountsProvider
        The Chart of Accounts to check account references against. Defaults to the configured provider.

    Returns
    -------
    list
        A list of Violation. An empty list means the journal may be posted.
    """
    if entries is None:
        entries = journal_model.get_entries_queryset()
    entries = list(entries)

    if not entries:
        return [Violation(code=EMPTY_JOURNAL, message='Journal has no entries and cannot be posted.')]

    coa_provider = get_coa_provider(coa_provider)
    violations = list()

    account_cache = dict()
    for entry in entries:
        if entry.account_id not in account_cache:
            account_cache[entry.account_id] = coa_provider.account_exists(journal_model.tenant_id, entry.account_id)
        account_info = account_cache[entry.account_id]
        if not account_info.exists:
            violations.append(Violation(
                code=ACCOUNT_NOT_FOUND,
                message=f'Account {entry.account_id} does not exist.',
                line_number=entry.line_number
            ))
        elif not account_info.is_active:
            violations.append(Violation(
                code=ACCOUNT_INACTIVE,
                message=f'Account {entry.account_id} is closed or inactive.',
                line_number=entry.line_number
            ))

    for entry in entries:
        violations += validate_entry_values(
            debit_amount=entry.debit_amount,
            credit_amount=entry.credit_amount,
            line_number=entry.line_number
        )

    violations += validate_line_numbers(e.line_number for e in entries)

    if violations:
        return violations

    return validate_balance(entries)
