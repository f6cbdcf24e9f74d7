"""
Django GL created on top of the Django Ledger engine.
Copyright© EDMA Group Inc licensed under the GPLv3 Agreement.

The GLSettingsModel holds the per-tenant configuration of the posting engine: document numbering, the open
accounting period boundaries and the posting policies. It is also the Period Lock Guard: is_postable() decides
whether a transaction date may receive new postings.

Open periods are month based. The earliest open period starts on current_period_open. When future posting is not
allowed, the latest open period is the month of next_period_open (or the month of current_period_open when no next
period is configured, or today when no period is configured at all) and any later date is rejected.
"""
from datetime import date
from typing import Optional, Union
from uuid import uuid4, UUID

from dateutil.relativedelta import relativedelta
from django.core.exceptions import ObjectDoesNotExist, ValidationError
from django.core.validators import MinValueValidator, MaxValueValidator
from django.db import models, transaction, IntegrityError
from django.db.models import Manager, QuerySet
from django.utils.timezone import localdate
from django.utils.translation import gettext_lazy as _

from django_gl.models.mixins import CreateUpdateMixIn
from django_gl.models.utils import lazy_loader
from django_gl.settings import (
    DJANGO_GL_JOURNAL_NUMBER_PREFIX,
    DJANGO_GL_BATCH_NUMBER_PREFIX,
    DJANGO_GL_DOCUMENT_NUMBER_PADDING
)


class GLSettingsModelValidationError(ValidationError):
    pass


class GLSettingsModelQuerySet(QuerySet):
    pass


class GLSettingsModelManager(Manager):

    def for_tenant(self, tenant_id: Union[UUID, str], for_update: bool = False):
        """
        Fetches the settings of a tenant, creating the default settings on first use.

        Parameters
        ----------
        tenant_id: UUID
            The tenant (company) identifier.
        for_update: bool
            Locks the settings row until the end of the current transaction. Used by posting so that the period
            boundaries cannot change between the check and the commit.

        Returns
        -------
        GLSettingsModel
        """
        qs = self.get_queryset()
        if for_update:
            qs = qs.select_for_update()
        try:
            return qs.get(tenant_id__exact=tenant_id)
        except ObjectDoesNotExist:
            try:
                with transaction.atomic():
                    return self.create(tenant_id=tenant_id)
            except IntegrityError:
                return qs.get(tenant_id__exact=tenant_id)


class GLSettingsModelAbstract(CreateUpdateMixIn):
    """
    Per-tenant configuration of the posting engine.

    Attributes
    ----------
    tenant_id: UUID
        The tenant (company) these settings belong to. Unique.
    journal_number_prefix: str
        Prefix of the journal numbers. Defaults to DJANGO_GL_JOURNAL_NUMBER_PREFIX.
    batch_number_prefix: str
        Prefix of the batch numbers. Defaults to DJANGO_GL_BATCH_NUMBER_PREFIX.
    number_padding: int
        Zero padding applied to the numbering counters.
    current_period_open: date
        First day of the earliest period accepting postings. No lower boundary when null.
    next_period_open: date
        First day of the latest period accepting postings.
    allow_future_posting: bool
        Accepts dates after the latest open period.
    require_batch_approval: bool
        Batches must be reviewed (Ready) before they can be posted.
    lock_posted_entries: bool
        Tenant-visible policy flag. Posted journals are never editable regardless of its value.
    default_posting_rules: dict
        Opaque posting rules kept on behalf of the callers.
    """
    uuid = models.UUIDField(default=uuid4, editable=False, primary_key=True)
    tenant_id = models.UUIDField(unique=True, verbose_name=_('Tenant ID'))
    journal_number_prefix = models.CharField(max_length=10,
                                             default=DJANGO_GL_JOURNAL_NUMBER_PREFIX,
                                             verbose_name=_('Journal Number Prefix'))
    batch_number_prefix = models.CharField(max_length=10,
                                           default=DJANGO_GL_BATCH_NUMBER_PREFIX,
                                           verbose_name=_('Batch Number Prefix'))
    number_padding = models.PositiveSmallIntegerField(default=DJANGO_GL_DOCUMENT_NUMBER_PADDING,
                                                      validators=[
                                                          MinValueValidator(limit_value=1),
                                                          MaxValueValidator(limit_value=20)
                                                      ],
                                                      verbose_name=_('Number Padding'))
    current_period_open = models.DateField(null=True, blank=True, verbose_name=_('Current Open Period'))
    next_period_open = models.DateField(null=True, blank=True, verbose_name=_('Next Open Period'))
    allow_future_posting = models.BooleanField(default=False, verbose_name=_('Allow Future Posting'))
    require_batch_approval = models.BooleanField(default=False, verbose_name=_('Require Batch Approval'))
    lock_posted_entries = models.BooleanField(default=True, verbose_name=_('Lock Posted Entries'))
    default_posting_rules = models.JSONField(default=dict, blank=True, verbose_name=_('Default Posting Rules'))

    objects = GLSettingsModelManager.from_queryset(queryset_class=GLSettingsModelQuerySet)()

    class Meta:
        abstract = True
        verbose_name = _('GL Settings')
        verbose_name_plural = _('GL Settings')

    def __str__(self):
        return f'GL Settings {self.tenant_id}: open from {self.current_period_open or "-"}'

    def get_earliest_open_date(self) -> Optional[date]:
        return self.current_period_open

    def get_latest_open_date(self) -> Optional[date]:
        """
        The last date accepting postings. None when future posting is allowed.
        """
        if self.allow_future_posting:
            return None
        anchor = self.next_period_open or self.current_period_open
        if anchor is None:
            return localdate()
        return anchor + relativedelta(day=31)

    def is_postable(self, dt: date) -> bool:
        """
        Determines if a transaction date may receive new postings.

        Parameters
        ----------
        dt: date
            The transaction date of the journal.

        Returns
        -------
        bool
            True if the date falls within the open periods.
        """
        earliest = self.get_earliest_open_date()
        if earliest is not None and dt < earliest:
            return False
        latest = self.get_latest_open_date()
        if latest is not None and dt > latest:
            return False
        return True

    def get_lock_reason(self, dt: date) -> Optional[str]:
        earliest = self.get_earliest_open_date()
        if earliest is not None and dt < earliest:
            return f'Date {dt} is before the earliest open period starting {earliest}.'
        latest = self.get_latest_open_date()
        if latest is not None and dt > latest:
            return f'Date {dt} is after the latest open period ending {latest} and future posting is not allowed.'
        return None

    def get_number_prefix(self, key: str) -> str:
        SequenceStateModel = lazy_loader.get_sequence_state_model()
        if key == SequenceStateModel.KEY_JOURNAL:
            return self.journal_number_prefix
        elif key == SequenceStateModel.KEY_BATCH:
            return self.batch_number_prefix
        raise ValueError(f'Invalid numbering key {key}.')

    def clean(self):
        if all([
            self.current_period_open,
            self.next_period_open,
        ]) and self.next_period_open < self.current_period_open:
            raise GLSettingsModelValidationError(
                message=_('Next open period cannot start before the current open period.')
            )


class GLSettingsModel(GLSettingsModelAbstract):
    """
    GL Settings Model Base Class From Abstract
    """

    class Meta(GLSettingsModelAbstract.Meta):
        abstract = False


def is_postable(tenant_id: Union[UUID, str], dt: date) -> bool:
    """
    Period Lock Guard. Determines if the tenant accepts postings dated dt.
    """
    return GLSettingsModel.objects.for_tenant(tenant_id).is_postable(dt)
