"""
Django GL created on top of the Django Ledger engine.
Copyright© EDMA Group Inc licensed under the GPLv3 Agreement.

The SequenceStateModel keeps one counter per tenant and document kind (journal, batch). Every JournalModel and
BatchModel number comes from next_number(), which increments and reads the counter as one atomic step: the counter
row is locked with SELECT ... FOR UPDATE, incremented with an F() expression and read back inside the same database
transaction. Two callers can never receive the same value. Numbers consumed by a failed operation are not reclaimed,
so gaps are possible but duplicates are not.
"""
from typing import Tuple, Union
from uuid import uuid4, UUID

from django.core.exceptions import ObjectDoesNotExist
from django.core.validators import MinValueValidator
from django.db import models, transaction, IntegrityError, DatabaseError
from django.db.models import F, Manager
from django.utils.translation import gettext_lazy as _

from django_gl.exceptions import SequencerUnavailableError
from django_gl.models.utils import lazy_loader
from django_gl.settings import DJANGO_GL_SEQUENCER_MAX_RETRIES, logger


class SequenceStateModelManager(Manager):

    def get_next_sequence(self, tenant_id: Union[UUID, str], key: str) -> int:
        """
        Atomically increments and returns the counter of the given tenant and key.

        Parameters
        ----------
        tenant_id: UUID
            The tenant owning the counter.
        key: str
            The document kind. One of SequenceStateModel.KEY_CHOICES.

        Returns
        -------
        int
            The new counter value.

        Raises
        ------
        SequencerUnavailableError
            If the counter store cannot be reached.
        """
        if key not in self.model.VALID_KEYS:
            raise ValueError(f'Invalid numbering key {key}. Must be one of {self.model.VALID_KEYS}.')

        for attempt in range(DJANGO_GL_SEQUENCER_MAX_RETRIES):
            try:
                with transaction.atomic():
                    try:
                        state_model = self.select_for_update().get(
                            tenant_id__exact=tenant_id,
                            key__exact=key
                        )
                        state_model.sequence = F('sequence') + 1
                        state_model.save(update_fields=['sequence'])
                        state_model.refresh_from_db(fields=['sequence'])
                    except ObjectDoesNotExist:
                        state_model = self.create(
                            tenant_id=tenant_id,
                            key=key,
                            sequence=1
                        )
                    return state_model.sequence

            # another caller created the counter row first...
            except IntegrityError:
                logger.info(f'Sequence {key} for tenant {tenant_id} created concurrently. Retry {attempt + 1}.')
            except DatabaseError as e:
                logger.error(f'Sequencer unavailable for tenant {tenant_id}, key {key}: {e}')
                raise SequencerUnavailableError(f'Cannot issue {key} number for tenant {tenant_id}: {e}') from e

        raise SequencerUnavailableError(
            f'Cannot issue {key} number for tenant {tenant_id} after {DJANGO_GL_SEQUENCER_MAX_RETRIES} attempts.'
        )


class SequenceStateModelAbstract(models.Model):
    """
    Numbering counter of a tenant.

    Attributes
    ----------
    tenant_id: UUID
        The tenant owning the counter.
    key: str
        The kind of document numbered by this counter.
    sequence: int
        The last issued value. Zero if no value was issued.
    """
    KEY_JOURNAL = 'journal'
    KEY_BATCH = 'batch'

    KEY_CHOICES = [
        (KEY_JOURNAL, _('Journal')),
        (KEY_BATCH, _('Batch')),
    ]
    VALID_KEYS = [choice[0] for choice in KEY_CHOICES]

    uuid = models.UUIDField(default=uuid4, editable=False, primary_key=True)
    tenant_id = models.UUIDField(verbose_name=_('Tenant ID'))
    key = models.CharField(choices=KEY_CHOICES, max_length=10)
    sequence = models.BigIntegerField(default=0, validators=[MinValueValidator(limit_value=0)])

    objects = SequenceStateModelManager()

    class Meta:
        abstract = True
        indexes = [
            models.Index(fields=['key']),
            models.Index(fields=['tenant_id', 'key']),
        ]
        unique_together = [
            ('tenant_id', 'key')
        ]

    def __str__(self):
        return f'{self.__class__.__name__} {self.tenant_id}: KEY: {self.get_key_display()}, SEQ: {self.sequence}'


class SequenceStateModel(SequenceStateModelAbstract):
    """
    Sequence State Model Base Class from Abstract.
    """

    class Meta(SequenceStateModelAbstract.Meta):
        abstract = False


def format_number(prefix: str, sequence: int, padding: int) -> str:
    return f'{prefix}-{str(sequence).zfill(padding)}'


def issue_number(tenant_id: Union[UUID, str], kind: str) -> Tuple[int, str]:
    """
    Issues the next document number of a tenant together with its counter value. Documents keep the counter value
    to sort numerically, since the formatted number only sorts correctly while it fits the padding.

    Parameters
    ----------
    tenant_id: UUID
        The tenant requesting the number.
    kind: str
        SequenceStateModel.KEY_JOURNAL or SequenceStateModel.KEY_BATCH.

    Returns
    -------
    tuple
        The counter value and the formatted identifier, e.g. (42, "JE-000042").
    """
    try:
        settings_model = lazy_loader.get_settings_model().objects.for_tenant(tenant_id)
    except DatabaseError as e:
        raise SequencerUnavailableError(f'Cannot read numbering settings for tenant {tenant_id}: {e}') from e

    sequence = SequenceStateModel.objects.get_next_sequence(tenant_id=tenant_id, key=kind)
    return sequence, format_number(
        prefix=settings_model.get_number_prefix(kind),
        sequence=sequence,
        padding=settings_model.number_padding
    )


def next_number(tenant_id: Union[UUID, str], kind: str) -> str:
    """
    Issues the next document number of a tenant, e.g. JE-000042. Two callers never receive the same number.
    """
    return issue_number(tenant_id, kind)[1]
