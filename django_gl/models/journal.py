"""
Django GL created on top of the Django Ledger engine.
Copyright© EDMA Group Inc licensed under the GPLv3 Agreement.

A JournalModel is one double-entry accounting transaction. It is composed of one or more EntryModel and owns the
Draft -> Posted state machine:

    * Journals are created as Draft with a number issued by the sequencer. No entries are required at creation.
    * Entries may be added, updated and removed only while the journal is Draft. Every mutation is checked against
      the version the caller loaded (optimistic concurrency) and recomputes the cached totals.
    * A Draft journal may be temporarily unbalanced, but it can only transition to Posted once the entry validator
      and the period lock guard accept it. Posting happens exactly once and is never undone.
    * A Posted journal is immutable. The only way to undo its effect is a reversal: a new Draft journal mirroring
      every entry with the sides swapped.

Journals that belong to a BatchModel cannot be posted individually. They post together with the batch.
"""
import logging
from datetime import date
from decimal import Decimal
from typing import Dict, List, Optional, Union
from uuid import uuid4, UUID

from django.core.exceptions import ValidationError
from django.db import models, transaction, DatabaseError
from django.db.models import Manager, QuerySet, Max
from django.db.models.functions import Coalesce
from django.db.models.signals import pre_save, pre_delete
from django.utils.timezone import localtime, localdate
from django.utils.translation import gettext_lazy as _

from django_gl.exceptions import (
    JournalValidationError,
    JournalStateError,
    EntryLockedError,
    PeriodLockedError,
    ConcurrencyConflictError
)
from django_gl.models.gl_settings import GLSettingsModel
from django_gl.models.mixins import CreateUpdateMixIn, OptimisticLockMixIn, LoggingMixIn
from django_gl.models.sequence import SequenceStateModel, issue_number
from django_gl.models.signals import journal_posted, posting_failed, send_notification
from django_gl.models.utils import lazy_loader, to_cents, from_cents, validate_io_date
from django_gl.settings import DJANGO_GL_AMOUNT_DECIMAL_PLACES, DJANGO_GL_AMOUNT_MAX_DIGITS, DJANGO_GL_ZERO
from django_gl.validation import validate_journal, validate_entry_values


def to_amount(value) -> Decimal:
    return from_cents(to_cents(value))


class JournalModelQuerySet(QuerySet):
    """
    A custom defined QuerySet for the JournalModel. All filters can be chained.
    """

    def draft(self):
        return self.filter(status=JournalModel.STATUS_DRAFT)

    def posted(self):
        return self.filter(status=JournalModel.STATUS_POSTED)

    def for_tenant(self, tenant_id: Union[UUID, str]):
        return self.filter(tenant_id__exact=tenant_id)

    def for_batch(self, batch_model):
        if isinstance(batch_model, lazy_loader.get_batch_model()):
            return self.filter(batch=batch_model)
        return self.filter(batch__uuid__exact=batch_model)

    def unbatched(self):
        return self.filter(batch__isnull=True)

    def for_source(self, source: Union[str, List[str]]):
        if isinstance(source, str):
            return self.filter(source__exact=source)
        return self.filter(source__in=source)

    def from_date(self, from_date: Union[str, date]):
        return self.filter(date__gte=validate_io_date(from_date))

    def to_date(self, to_date: Union[str, date]):
        return self.filter(date__lte=validate_io_date(to_date))

    def for_accounts(self, account_list: Union[str, List[str]]):
        """
        Journals with at least one entry on the given accounts.
        """
        if isinstance(account_list, str):
            account_list = [account_list]
        return self.filter(entrymodel__account_id__in=account_list).distinct()

    def for_entity_link(self, entity_type: str, entity_id: Optional[str] = None):
        qs = self.filter(entrymodel__entity_type__exact=entity_type)
        if entity_id is not None:
            qs = qs.filter(entrymodel__entity_id__exact=entity_id)
        return qs.distinct()

    def reversals_of(self, journal_model):
        return self.filter(reversal_of=journal_model)


class JournalModelManager(Manager):

    def for_tenant(self, tenant_id: Union[UUID, str]) -> JournalModelQuerySet:
        return self.get_queryset().for_tenant(tenant_id)

    def for_reports(self, tenant_id: Union[UUID, str]) -> JournalModelQuerySet:
        """
        Posted journals of the tenant. Draft journals are never exposed to report generators.
        """
        return self.for_tenant(tenant_id).posted()

    def create_journal(self,
                       tenant_id: Union[UUID, str],
                       actor_id: Union[UUID, str],
                       date: Union[str, date],
                       memo: Optional[str] = None,
                       source: Optional[str] = None,
                       source_id: Optional[str] = None,
                       reversal_of=None):
        """
        Creates a new Draft journal with the next journal number of the tenant.

        Parameters
        ----------
        tenant_id: UUID
            The tenant (company) owning the journal.
        actor_id: UUID
            The user creating the journal.
        date: date or str
            The transaction date. Strings must be YYYY-MM-DD.
        memo: str
            Optional journal description.
        source: str
            The originating system tag. Defaults to "manual".
        source_id: str
            Optional identifier of the originating record in the source system.
        reversal_of: JournalModel
            The journal reversed by this journal, if any.

        Returns
        -------
        JournalModel
            The newly created Draft journal.

        Raises
        ------
        SequencerUnavailableError
            If no journal number could be issued. Nothing is created.
        """
        with transaction.atomic():
            journal_sequence, journal_number = issue_number(tenant_id, SequenceStateModel.KEY_JOURNAL)
            journal_model = self.model(
                tenant_id=tenant_id,
                journal_sequence=journal_sequence,
                journal_number=journal_number,
                date=validate_io_date(date),
                memo=memo or '',
                source=source or self.model.SOURCE_MANUAL,
                source_id=source_id,
                created_by=actor_id,
                reversal_of=reversal_of
            )
            journal_model.full_clean()
            journal_model.save()
        journal_model.send_log(f'Created journal {journal_model.journal_number} for tenant {tenant_id}.')
        return journal_model


class JournalModelAbstract(CreateUpdateMixIn, OptimisticLockMixIn, LoggingMixIn):
    """
    The base implementation of the JournalModel.

    Attributes
    ----------
    uuid : UUID
        This is a unique primary key generated for the table. The default value of this field is uuid4().
    tenant_id: UUID
        The tenant (company) owning this journal.
    journal_number: str
        Sequencer-issued identifier, unique per tenant. E.g. JE-000042.
    journal_sequence: int
        The counter value behind the journal number. Journals sort by it.
    batch: BatchModel
        The batch this journal will post with. A journal belongs to at most one batch.
    date: date
        The transaction date used by the period lock guard and by reports.
    memo: str
        A description of the transaction.
    source: str
        Tag of the originating system, e.g. "payroll", "manual" or "reversal".
    source_id: str
        Optional identifier of the originating record.
    status: str
        Draft or Posted.
    created_by: UUID
        The user that created the journal.
    posted_by: UUID
        The user that posted the journal. Set only on posting.
    posted_at: datetime
        The posting timestamp.
    reversal_of: JournalModel
        The posted journal this journal reverses, if any.
    total_debits: Decimal
        Cached sum of all DEBIT amounts.
    total_credits: Decimal
        Cached sum of all CREDIT amounts.
    is_balanced: bool
        Cached flag. True when total DEBITs equal total CREDITs to the cent.
    """
    STATUS_DRAFT = 'draft'
    STATUS_POSTED = 'posted'

    STATUS_CHOICES = [
        (STATUS_DRAFT, _('Draft')),
        (STATUS_POSTED, _('Posted')),
    ]

    SOURCE_PAYROLL = 'payroll'
    SOURCE_MANUAL = 'manual'
    SOURCE_REVERSAL = 'reversal'
    SOURCE_IMPORT = 'import'
    SOURCE_SYSTEM = 'system'

    EDITABLE_ENTRY_FIELDS = (
        'account_id',
        'debit_amount',
        'credit_amount',
        'description',
        'entity_type',
        'entity_id'
    )

    uuid = models.UUIDField(default=uuid4, editable=False, primary_key=True)
    tenant_id = models.UUIDField(verbose_name=_('Tenant ID'))
    journal_number = models.CharField(max_length=30, editable=False, verbose_name=_('Journal Number'))
    journal_sequence = models.BigIntegerField(editable=False, verbose_name=_('Journal Sequence'))
    batch = models.ForeignKey('django_gl.BatchModel',
                              null=True,
                              blank=True,
                              editable=False,
                              on_delete=models.PROTECT,
                              verbose_name=_('Batch'))
    date = models.DateField(verbose_name=_('Date'))
    memo = models.TextField(blank=True, default='', verbose_name=_('Memo'))
    source = models.CharField(max_length=30, default=SOURCE_MANUAL, verbose_name=_('Source'))
    source_id = models.CharField(max_length=64, null=True, blank=True, verbose_name=_('Source ID'))
    status = models.CharField(max_length=10,
                              choices=STATUS_CHOICES,
                              default=STATUS_DRAFT,
                              editable=False,
                              verbose_name=_('Status'))
    created_by = models.UUIDField(verbose_name=_('Created By'))
    posted_by = models.UUIDField(null=True, blank=True, editable=False, verbose_name=_('Posted By'))
    posted_at = models.DateTimeField(null=True, blank=True, editable=False, verbose_name=_('Posted At'))
    reversal_of = models.ForeignKey('self',
                                    null=True,
                                    blank=True,
                                    editable=False,
                                    on_delete=models.PROTECT,
                                    related_name='reversals',
                                    verbose_name=_('Reversal Of'))
    total_debits = models.DecimalField(max_digits=DJANGO_GL_AMOUNT_MAX_DIGITS,
                                       decimal_places=DJANGO_GL_AMOUNT_DECIMAL_PLACES,
                                       default=DJANGO_GL_ZERO,
                                       editable=False,
                                       verbose_name=_('Total Debits'))
    total_credits = models.DecimalField(max_digits=DJANGO_GL_AMOUNT_MAX_DIGITS,
                                        decimal_places=DJANGO_GL_AMOUNT_DECIMAL_PLACES,
                                        default=DJANGO_GL_ZERO,
                                        editable=False,
                                        verbose_name=_('Total Credits'))
    is_balanced = models.BooleanField(default=True, editable=False, verbose_name=_('Is Balanced'))

    objects = JournalModelManager.from_queryset(queryset_class=JournalModelQuerySet)()

    class Meta:
        abstract = True
        ordering = ['tenant_id', 'journal_sequence']
        verbose_name = _('Journal')
        verbose_name_plural = _('Journals')
        unique_together = [
            ('tenant_id', 'journal_number'),
            ('tenant_id', 'journal_sequence')
        ]
        indexes = [
            models.Index(fields=['tenant_id', 'status']),
            models.Index(fields=['tenant_id', 'date']),
            models.Index(fields=['source', 'source_id']),
            models.Index(fields=['batch']),
        ]

    def __str__(self):
        return f'{self.journal_number} ({self.get_status_display()}): {self.date}'

    # State...
    def is_draft(self) -> bool:
        return self.status == self.STATUS_DRAFT

    def is_posted(self) -> bool:
        return self.status == self.STATUS_POSTED

    def is_batch_member(self) -> bool:
        return self.batch_id is not None

    def is_reversal(self) -> bool:
        return self.reversal_of_id is not None

    def can_edit(self) -> bool:
        return self.is_draft()

    def can_delete(self) -> bool:
        return self.is_draft()

    def can_post(self) -> bool:
        """
        Quick check on the cached state. The entry validator and the period lock guard have the final word.
        """
        return all([
            self.is_draft(),
            self.is_balanced,
            not self.is_batch_member(),
            to_cents(self.total_debits) > 0
        ])

    def can_reverse(self) -> bool:
        return self.is_posted()

    def get_entries_queryset(self):
        EntryModel = lazy_loader.get_entry_model()
        return EntryModel.objects.filter(journal__uuid__exact=self.uuid).order_by('line_number')

    def get_summary(self) -> Dict:
        return {
            'id': self.uuid,
            'journal_number': self.journal_number,
            'date': self.date,
            'status': self.status,
            'total_debits': self.total_debits,
            'total_credits': self.total_credits,
            'batch_id': self.batch_id,
        }

    def recompute_totals(self, commit: bool = False):
        """
        Recomputes the cached totals and balance flag from the persisted entries.

        Parameters
        ----------
        commit: bool
            Persists the new totals with a versioned write. Defaults to False.
        """
        debit_cents = 0
        credit_cents = 0
        for debit_amount, credit_amount in self.get_entries_queryset().values_list('debit_amount', 'credit_amount'):
            debit_cents += to_cents(debit_amount)
            credit_cents += to_cents(credit_amount)

        self.total_debits = from_cents(debit_cents)
        self.total_credits = from_cents(credit_cents)
        self.is_balanced = debit_cents == credit_cents

        if commit:
            self.save_versioned(update_fields=[
                'total_debits',
                'total_credits',
                'is_balanced'
            ])

    def validate(self, coa_provider=None, entries=None):
        """
        Pre-submission check of the journal. Nothing is written.

        Returns
        -------
        list
            A list of Violation. An empty list means the journal may be posted.
        """
        return validate_journal(self, entries=entries, coa_provider=coa_provider)

    def lock_for_edit(self):
        """
        Locks the rows touched by an edit of this journal for the rest of the current transaction and verifies that
        this instance may still change them. The batch row of a member journal is locked before the journal row,
        the same order used by the BatchModel when it changes its members. Immutability is checked before the
        version.

        Returns
        -------
        tuple
            The locked JournalModel and its locked BatchModel, or None when the journal is not a batch member.
        """
        BatchModel = lazy_loader.get_batch_model()
        batch_id = self.__class__.objects.filter(uuid__exact=self.uuid).values_list('batch_id', flat=True).get()
        batch_model = None
        if batch_id is not None:
            batch_model = BatchModel.objects.select_for_update().get(uuid__exact=batch_id)

        journal_model = self.__class__.objects.select_for_update().get(uuid__exact=self.uuid)
        if journal_model.is_posted():
            raise EntryLockedError(
                message=_(f'Journal {journal_model.journal_number} is posted and cannot be modified.'),
                code='journal_posted'
            )
        self.check_version(journal_model.version)

        # membership changed between the read and the lock...
        if journal_model.batch_id != batch_id:
            raise ConcurrencyConflictError(
                message=_(f'Journal {journal_model.journal_number} was moved to another batch. Reload and try again.'),
                code='stale_version'
            )
        return journal_model, batch_model

    def finish_edit(self, batch_model=None):
        """
        Recomputes the totals after an entry change. The batch of a member journal goes back to Draft, since its
        review no longer covers the journal content.
        """
        self.recompute_totals(commit=True)
        if batch_model is not None:
            batch_model.reset_review()

    # Entries...
    def add_entry(self,
                  account_id: str,
                  debit_amount: Union[Decimal, int, str] = DJANGO_GL_ZERO,
                  credit_amount: Union[Decimal, int, str] = DJANGO_GL_ZERO,
                  description: Optional[str] = None,
                  entity_type: Optional[str] = None,
                  entity_id: Optional[str] = None):
        """
        Appends an entry to a Draft journal with the next line number.

        Parameters
        ----------
        account_id: str
            The account reference in the tenant's Chart of Accounts.
        debit_amount: Decimal
            The DEBIT side. Leave zero for a CREDIT entry.
        credit_amount: Decimal
            The CREDIT side. Leave zero for a DEBIT entry.
        description: str
            Optional line description.
        entity_type: str
            Optional kind of the originating business record.
        entity_id: str
            Optional identifier of the originating business record.

        Returns
        -------
        EntryModel
            The newly created entry.
        """
        violations = validate_entry_values(debit_amount, credit_amount)
        if violations:
            raise JournalValidationError(violations)

        EntryModel = lazy_loader.get_entry_model()
        with transaction.atomic():
            batch_model = self.lock_for_edit()[1]
            last_line = self.get_entries_queryset().aggregate(
                last_line=Coalesce(Max('line_number'), 0)
            )['last_line']
            entry_model = EntryModel(
                journal=self,
                line_number=last_line + 1,
                account_id=str(account_id),
                debit_amount=to_amount(debit_amount),
                credit_amount=to_amount(credit_amount),
                description=description,
                entity_type=entity_type,
                entity_id=None if entity_id is None else str(entity_id)
            )
            entry_model.save()
            self.finish_edit(batch_model)
        return entry_model

    def update_entry(self, line_number: int, **fields):
        """
        Updates an entry of a Draft journal.

        Parameters
        ----------
        line_number: int
            The line number of the entry to update.
        fields: dict
            New values. Any of account_id, debit_amount, credit_amount, description, entity_type, entity_id.

        Returns
        -------
        EntryModel
            The updated entry.
        """
        invalid_fields = set(fields).difference(self.EDITABLE_ENTRY_FIELDS)
        if invalid_fields:
            raise ValueError(f'Cannot update entry fields {sorted(invalid_fields)}.')

        with transaction.atomic():
            batch_model = self.lock_for_edit()[1]
            entry_model = self.get_entries_queryset().get(line_number__exact=line_number)

            violations = validate_entry_values(fields.get('debit_amount', entry_model.debit_amount),
                                               fields.get('credit_amount', entry_model.credit_amount),
                                               line_number=line_number)
            if violations:
                raise JournalValidationError(violations)

            for field_name, value in fields.items():
                if field_name in ('debit_amount', 'credit_amount'):
                    value = to_amount(value)
                setattr(entry_model, field_name, value)

            entry_model.save()
            self.finish_edit(batch_model)
        return entry_model

    def remove_entry(self, line_number: int):
        """
        Removes an entry of a Draft journal. The following entries move up one line so that line numbers stay
        dense from 1.
        """
        with transaction.atomic():
            batch_model = self.lock_for_edit()[1]
            entry_qs = self.get_entries_queryset()
            entry_qs.get(line_number__exact=line_number).delete()
            for entry_model in entry_qs.filter(line_number__gt=line_number).order_by('line_number'):
                entry_model.line_number -= 1
                entry_model.save(update_fields=['line_number', 'updated'])
            self.finish_edit(batch_model)

    # Posting...
    def mark_as_posted(self, actor_id: Union[UUID, str], posted_at=None, commit: bool = True):
        """
        Transitions the journal to Posted. Callers must run the entry validator and the period lock guard in the
        same transaction first.
        """
        self.status = self.STATUS_POSTED
        self.posted_by = actor_id
        self.posted_at = posted_at or localtime()
        if commit:
            self.save_versioned(update_fields=[
                'status',
                'posted_by',
                'posted_at'
            ])

    def post(self, actor_id: Union[UUID, str], coa_provider=None):
        """
        Posts a single journal. Validation, the period lock guard and the status change run in one database
        transaction with the journal and the tenant settings rows locked. Either the journal is Posted or it is left
        unchanged.

        Parameters
        ----------
        actor_id: UUID
            The user posting the journal.
        coa_provider: ChartOfAccountsProvider
            Optional Chart of Accounts used to validate account references. Defaults to the configured provider.

        Raises
        ------
        JournalStateError
            If the journal is already posted or belongs to a batch.
        JournalValidationError
            If the entries violate any accounting rule.
        PeriodLockedError
            If the journal date is outside the open periods of the tenant.
        ConcurrencyConflictError
            If the journal was modified since this instance was loaded.
        """
        try:
            with transaction.atomic():
                journal_model = self.__class__.objects.select_for_update().get(uuid__exact=self.uuid)

                if journal_model.is_posted():
                    raise JournalStateError(
                        message=_(f'Journal {journal_model.journal_number} is already posted.'),
                        code='already_posted'
                    )
                self.check_version(journal_model.version)
                if journal_model.is_batch_member():
                    raise JournalStateError(
                        message=_(f'Journal {journal_model.journal_number} belongs to batch '
                                  f'{journal_model.batch.batch_number} and must be posted with the batch.'),
                        code='batch_member'
                    )

                violations = validate_journal(journal_model, coa_provider=coa_provider)
                if violations:
                    raise JournalValidationError(violations)

                settings_model = GLSettingsModel.objects.for_tenant(journal_model.tenant_id, for_update=True)
                if not settings_model.is_postable(journal_model.date):
                    raise PeriodLockedError(
                        message=_(f'Journal {journal_model.journal_number}: '
                                  f'{settings_model.get_lock_reason(journal_model.date)}'),
                        code='period_locked'
                    )

                journal_model.mark_as_posted(actor_id=actor_id)
                summary = journal_model.get_summary()
                transaction.on_commit(lambda: send_notification(
                    journal_posted,
                    sender=self.__class__,
                    instance=journal_model,
                    tenant_id=journal_model.tenant_id,
                    summary=summary
                ))
        except (ValidationError, DatabaseError) as e:
            self.send_log(f'Journal {self.journal_number} failed to post: {e}', level=logging.WARNING, force=True)
            send_notification(
                posting_failed,
                sender=self.__class__,
                instance=self,
                tenant_id=self.tenant_id,
                summary=self.get_summary(),
                error=e
            )
            raise

        self.refresh_from_db()
        self.send_log(f'Posted journal {self.journal_number} by {actor_id}.')

    # Deletion...
    def delete(self, using=None, keep_parents=False):
        """
        Deletes a Draft journal and its entries. A batch member is detached from its batch, which goes back to
        Draft.
        """
        with transaction.atomic():
            batch_model = self.lock_for_edit()[1]
            result = super().delete(using=using, keep_parents=keep_parents)
            if batch_model is not None:
                batch_model.reset_review()
        return result

    # Reversal...
    def reverse(self, actor_id: Union[UUID, str], date=None, memo: Optional[str] = None):
        """
        Creates a Draft journal that mirrors every entry of this Posted journal with the DEBIT and CREDIT sides
        swapped. Once posted, the combined effect of both journals nets to zero on every account. The reversal is
        never posted automatically.

        Parameters
        ----------
        actor_id: UUID
            The user requesting the reversal.
        date: date
            The transaction date of the reversal. Defaults to today.
        memo: str
            Optional memo. Defaults to "Reversal of <journal number>".

        Returns
        -------
        JournalModel
            The new Draft reversal journal.
        """
        EntryModel = lazy_loader.get_entry_model()
        with transaction.atomic():
            journal_model = self.__class__.objects.get(uuid__exact=self.uuid)
            if not journal_model.can_reverse():
                raise JournalStateError(
                    message=_(f'Journal {journal_model.journal_number} is not posted and cannot be reversed.'),
                    code='not_posted'
                )
            reversal_model = self.__class__.objects.create_journal(
                tenant_id=journal_model.tenant_id,
                actor_id=actor_id,
                date=date or localdate(),
                memo=memo or f'Reversal of {journal_model.journal_number}',
                source=self.SOURCE_REVERSAL,
                source_id=str(journal_model.uuid),
                reversal_of=journal_model
            )
            EntryModel.objects.bulk_create([
                EntryModel(
                    journal=reversal_model,
                    line_number=entry_model.line_number,
                    account_id=entry_model.account_id,
                    debit_amount=entry_model.credit_amount,
                    credit_amount=entry_model.debit_amount,
                    description=entry_model.description,
                    entity_type=entry_model.entity_type,
                    entity_id=entry_model.entity_id
                ) for entry_model in journal_model.get_entries_queryset()
            ])
            reversal_model.recompute_totals(commit=True)
        reversal_model.send_log(f'Created reversal {reversal_model.journal_number} of {journal_model.journal_number}.')
        return reversal_model


class JournalModel(JournalModelAbstract):
    """
    Journal Model Base Class From Abstract.
    """

    class Meta(JournalModelAbstract.Meta):
        abstract = False


def journalmodel_presave(instance: JournalModel, **kwargs):
    # posting goes through save_versioned(), a queryset update that sends no pre_save...
    if not instance._state.adding and instance.__class__.objects.filter(
            uuid__exact=instance.uuid,
            status=JournalModel.STATUS_POSTED
    ).exists():
        raise EntryLockedError(
            message=_(f'Journal {instance.journal_number} is posted and cannot be modified.'),
            code='journal_posted'
        )


def journalmodel_predelete(instance: JournalModel, **kwargs):
    if instance.__class__.objects.filter(uuid__exact=instance.uuid, status=JournalModel.STATUS_POSTED).exists():
        raise EntryLockedError(
            message=_(f'Journal {instance.journal_number} is posted and cannot be deleted.'),
            code='journal_posted'
        )


pre_save.connect(journalmodel_presave, sender=JournalModel)
pre_delete.connect(journalmodel_predelete, sender=JournalModel)
