"""
Django GL created on top of the Django Ledger engine.
Copyright© EDMA Group Inc licensed under the GPLv3 Agreement.
"""
import logging
from decimal import Decimal

from django.conf import settings

logger = logging.getLogger('Django GL Logger')
logger.setLevel(logging.INFO)

DJANGO_GL_LOGGER_NAME = getattr(settings, 'DJANGO_GL_LOGGER_NAME', 'Django GL Logger')

## NUMBERING ##
DJANGO_GL_JOURNAL_NUMBER_PREFIX = getattr(settings, 'DJANGO_GL_JOURNAL_NUMBER_PREFIX', 'JE')
DJANGO_GL_BATCH_NUMBER_PREFIX = getattr(settings, 'DJANGO_GL_BATCH_NUMBER_PREFIX', 'BATCH')
DJANGO_GL_DOCUMENT_NUMBER_PADDING = getattr(settings, 'DJANGO_GL_DOCUMENT_NUMBER_PADDING', 6)
DJANGO_GL_SEQUENCER_MAX_RETRIES = getattr(settings, 'DJANGO_GL_SEQUENCER_MAX_RETRIES', 5)

## AMOUNTS ##
DJANGO_GL_AMOUNT_DECIMAL_PLACES = getattr(settings, 'DJANGO_GL_AMOUNT_DECIMAL_PLACES', 2)
DJANGO_GL_AMOUNT_MAX_DIGITS = getattr(settings, 'DJANGO_GL_AMOUNT_MAX_DIGITS', 20)
DJANGO_GL_ZERO = Decimal('0.00')

## EXTERNAL COLLABORATORS ##
DJANGO_GL_CHART_OF_ACCOUNTS_PROVIDER = getattr(settings, 'DJANGO_GL_CHART_OF_ACCOUNTS_PROVIDER', None)

logger.info(f'Django GL Chart of Accounts Provider: {DJANGO_GL_CHART_OF_ACCOUNTS_PROVIDER}')
