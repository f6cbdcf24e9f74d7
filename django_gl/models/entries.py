"""
Django GL created on top of the Django Ledger engine.
Copyright© EDMA Group Inc licensed under the GPLv3 Agreement.

The EntryModel is one line of a JournalModel. Each entry performs either a DEBIT or a CREDIT on one account of the
tenant's Chart of Accounts and may link back to the business record that originated it (e.g. a payroll run).
Entries never exist without their journal and are frozen once the journal is posted, a constraint enforced here with
pre_save and pre_delete receivers so that no code path can bypass it.

The EntryModelQuerySet is also the read-only query surface used by report generators (balance sheet, trial
balance). EntryModel.objects.for_reports() only ever returns entries of posted journals.
"""
from datetime import date
from decimal import Decimal
from typing import List, Optional, Union
from uuid import uuid4, UUID

from django.core.validators import MinValueValidator
from django.db import models
from django.db.models import Manager, QuerySet, Sum, DecimalField
from django.db.models.functions import Coalesce
from django.db.models.signals import pre_save, pre_delete
from django.utils.translation import gettext_lazy as _

from django_gl.exceptions import EntryLockedError
from django_gl.models.mixins import CreateUpdateMixIn
from django_gl.models.utils import lazy_loader, validate_io_date
from django_gl.settings import DJANGO_GL_AMOUNT_DECIMAL_PLACES, DJANGO_GL_AMOUNT_MAX_DIGITS, DJANGO_GL_ZERO


class EntryModelQuerySet(QuerySet):
    """
    A custom QuerySet for EntryModel. All filters can be chained.
    """

    def posted(self) -> 'EntryModelQuerySet':
        """
        Entries of posted journals only. Draft journals never reach a report.
        """
        JournalModel = lazy_loader.get_journal_model()
        return self.filter(journal__status=JournalModel.STATUS_POSTED)

    def for_tenant(self, tenant_id: Union[UUID, str]) -> 'EntryModelQuerySet':
        return self.filter(journal__tenant_id__exact=tenant_id)

    def for_journal(self, journal_model) -> 'EntryModelQuerySet':
        if isinstance(journal_model, lazy_loader.get_journal_model()):
            return self.filter(journal=journal_model)
        return self.filter(journal__uuid__exact=journal_model)

    def for_accounts(self, account_list: List[str]) -> 'EntryModelQuerySet':
        """
        Filters entries by account reference.

        Parameters
        ----------
        account_list: list or str
            One account reference or a list of account references.
        """
        if isinstance(account_list, str):
            account_list = [account_list]
        return self.filter(account_id__in=account_list)

    def for_source(self, source: Union[str, List[str]]) -> 'EntryModelQuerySet':
        if isinstance(source, str):
            return self.filter(journal__source__exact=source)
        return self.filter(journal__source__in=source)

    def for_batch(self, batch_model) -> 'EntryModelQuerySet':
        if isinstance(batch_model, lazy_loader.get_batch_model()):
            return self.filter(journal__batch=batch_model)
        return self.filter(journal__batch__uuid__exact=batch_model)

    def for_entity_link(self, entity_type: str, entity_id: Optional[str] = None) -> 'EntryModelQuerySet':
        """
        Filters entries linked to an originating business record.

        Parameters
        ----------
        entity_type: str
            The kind of the originating record, e.g. "payroll_run".
        entity_id: str
            Optional identifier of the originating record.
        """
        qs = self.filter(entity_type__exact=entity_type)
        if entity_id is not None:
            qs = qs.filter(entity_id__exact=entity_id)
        return qs

    def from_date(self, from_date: Union[str, date]) -> 'EntryModelQuerySet':
        """
        Entries of journals dated on or after from_date (inclusive).
        """
        return self.filter(journal__date__gte=validate_io_date(from_date))

    def to_date(self, to_date: Union[str, date]) -> 'EntryModelQuerySet':
        """
        Entries of journals dated on or before to_date (inclusive).
        """
        return self.filter(journal__date__lte=validate_io_date(to_date))

    def account_balances(self) -> 'EntryModelQuerySet':
        """
        Aggregates the total DEBITs and CREDITs per account.

        Returns
        -------
        EntryModelQuerySet
            A values QuerySet with keys account_id, debits and credits, ordered by account.
        """
        return self.values('account_id').annotate(
            debits=Coalesce(Sum('debit_amount'), DJANGO_GL_ZERO, output_field=DecimalField()),
            credits=Coalesce(Sum('credit_amount'), DJANGO_GL_ZERO, output_field=DecimalField())
        ).order_by('account_id')


class EntryModelManager(Manager):

    def get_queryset(self) -> EntryModelQuerySet:
        """
        Entries are always fetched together with their journal, so the journal status is read with the entry.
        """
        qs = EntryModelQuerySet(self.model, using=self._db)
        return qs.select_related('journal')

    def for_reports(self, tenant_id: Union[UUID, str]) -> EntryModelQuerySet:
        """
        The sanctioned entry point for report generators. Only entries of posted journals of the tenant.
        """
        return self.get_queryset().for_tenant(tenant_id).posted()


class EntryModelAbstract(CreateUpdateMixIn):
    """
    Abstract base model of a journal line item.

    Attributes
    ----------
    uuid : UUID
        Unique identifier of the entry.
    journal : JournalModel
        The journal owning this entry.
    line_number : int
        Position of the entry in the journal. Unique and dense from 1.
    account_id : str
        Reference to an account of the tenant's Chart of Accounts.
    debit_amount : Decimal
        DEBIT side. Non-negative.
    credit_amount : Decimal
        CREDIT side. Non-negative.
    description : str
        Optional line description.
    entity_type : str
        Optional kind of the business record that originated the entry.
    entity_id : str
        Optional identifier of the business record that originated the entry.
    """
    uuid = models.UUIDField(default=uuid4, editable=False, primary_key=True)
    journal = models.ForeignKey(
        'django_gl.JournalModel',
        editable=False,
        verbose_name=_('Journal'),
        on_delete=models.CASCADE
    )
    line_number = models.PositiveIntegerField(validators=[MinValueValidator(1)], verbose_name=_('Line Number'))
    account_id = models.CharField(max_length=64, verbose_name=_('Account'))
    debit_amount = models.DecimalField(
        decimal_places=DJANGO_GL_AMOUNT_DECIMAL_PLACES,
        max_digits=DJANGO_GL_AMOUNT_MAX_DIGITS,
        default=Decimal('0.00'),
        validators=[MinValueValidator(0)],
        verbose_name=_('Debit Amount')
    )
    credit_amount = models.DecimalField(
        decimal_places=DJANGO_GL_AMOUNT_DECIMAL_PLACES,
        max_digits=DJANGO_GL_AMOUNT_MAX_DIGITS,
        default=Decimal('0.00'),
        validators=[MinValueValidator(0)],
        verbose_name=_('Credit Amount')
    )
    description = models.CharField(max_length=255, null=True, blank=True, verbose_name=_('Entry Description'))
    entity_type = models.CharField(max_length=50, null=True, blank=True, verbose_name=_('Linked Entity Type'))
    entity_id = models.CharField(max_length=64, null=True, blank=True, verbose_name=_('Linked Entity ID'))

    objects = EntryModelManager.from_queryset(EntryModelQuerySet)()

    class Meta:
        abstract = True
        ordering = ['line_number']
        verbose_name = _('Entry')
        verbose_name_plural = _('Entries')
        unique_together = [
            ('journal', 'line_number')
        ]
        indexes = [
            models.Index(fields=['journal', 'line_number']),
            models.Index(fields=['account_id']),
            models.Index(fields=['entity_type', 'entity_id']),
        ]

    def __str__(self):
        return f'{self.line_number}: {self.account_id} DR {self.debit_amount} / CR {self.credit_amount}'

    def is_debit(self) -> bool:
        return self.debit_amount > 0

    def is_credit(self) -> bool:
        return self.credit_amount > 0

    def get_amount(self) -> Decimal:
        return self.debit_amount if self.is_debit() else self.credit_amount


class EntryModel(EntryModelAbstract):
    """
    Base Entry Model From Abstract.
    """

    class Meta(EntryModelAbstract.Meta):
        abstract = False


def journal_is_posted(journal_id) -> bool:
    JournalModel = lazy_loader.get_journal_model()
    return JournalModel.objects.filter(
        uuid__exact=journal_id,
        status=JournalModel.STATUS_POSTED
    ).exists()


def entrymodel_presave(instance: EntryModel, **kwargs):
    if journal_is_posted(instance.journal_id):
        raise EntryLockedError(
            message=_(f'Cannot create or modify entries of posted journal {instance.journal_id}.'),
            code='journal_posted'
        )


def entrymodel_predelete(instance: EntryModel, **kwargs):
    if journal_is_posted(instance.journal_id):
        raise EntryLockedError(
            message=_(f'Cannot delete entries of posted journal {instance.journal_id}.'),
            code='journal_posted'
        )


pre_save.connect(entrymodel_presave, sender=EntryModel)
pre_delete.connect(entrymodel_predelete, sender=EntryModel)
