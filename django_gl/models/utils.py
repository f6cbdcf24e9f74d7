"""
Django GL created on top of the Django Ledger engine.
Copyright© EDMA Group Inc licensed under the GPLv3 Agreement.
"""
from datetime import date
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Union

from django.apps import apps
from django.utils.dateparse import parse_date


class LazyLoader:
    """
    Provides lazy access to the django_gl models so that modules referencing each other do not need
    circular imports.
    """

    app_config = apps.get_app_config(app_label='django_gl')

    SETTINGS_MODEL = 'glsettingsmodel'
    SEQUENCE_STATE_MODEL = 'sequencestatemodel'
    JOURNAL_MODEL = 'journalmodel'
    ENTRY_MODEL = 'entrymodel'
    BATCH_MODEL = 'batchmodel'

    def get_settings_model(self):
        return self.app_config.get_model(self.SETTINGS_MODEL)

    def get_sequence_state_model(self):
        return self.app_config.get_model(self.SEQUENCE_STATE_MODEL)

    def get_journal_model(self):
        return self.app_config.get_model(self.JOURNAL_MODEL)

    def get_entry_model(self):
        return self.app_config.get_model(self.ENTRY_MODEL)

    def get_batch_model(self):
        return self.app_config.get_model(self.BATCH_MODEL)


lazy_loader = LazyLoader()


def to_cents(amount: Union[Decimal, int, float, str, None]) -> int:
    """
    Converts a currency amount into an integer number of cents. Balances are always compared in cents.
    """
    if amount is None:
        return 0
    if not isinstance(amount, Decimal):
        amount = Decimal(str(amount))
    return int((amount * 100).quantize(Decimal('1'), rounding=ROUND_HALF_UP))


def from_cents(cents: int) -> Decimal:
    return (Decimal(cents) / 100).quantize(Decimal('0.01'))


def parse_amount(amount: Union[Decimal, int, float, str, None]) -> Decimal:
    """
    Parses a currency amount without rounding.

    Raises
    ------
    ValueError
        If the amount is not a finite number or carries fractions of a cent.
    """
    if amount is None:
        return Decimal('0')
    try:
        value = amount if isinstance(amount, Decimal) else Decimal(str(amount).strip())
    except InvalidOperation as e:
        raise ValueError(f'{amount!r} is not a valid amount.') from e
    if not value.is_finite():
        raise ValueError(f'{amount!r} is not a valid amount.')
    if value * 100 != (value * 100).to_integral_value():
        raise ValueError(f'Amount {amount} has fractions of a cent.')
    return value


def validate_io_date(dt: Union[str, date]) -> date:
    if isinstance(dt, str):
        parsed = parse_date(dt)
        if not parsed:
            raise ValueError(f'Invalid date {dt}. Use YYYY-MM-DD.')
        return parsed
    return dt
