"""
Django GL created on top of the Django Ledger engine.
Copyright© EDMA Group Inc licensed under the GPLv3 Agreement.

A BatchModel groups Draft journals that must post together. Posting a batch is all-or-nothing: every member
journal and the batch itself change state in a single database transaction, or nothing changes at all.

Batch life cycle:
    * Draft: journals may be added and removed.
    * Ready: the batch was reviewed. Adding or removing journals sends it back to Draft.
    * Posted: every member journal is Posted. Terminal.
    * Cancelled: members are released back to unbatched Draft journals. Terminal.

When the tenant requires batch approval, only Ready batches can be posted.
"""
import logging
from typing import Dict, Optional, Union
from uuid import uuid4, UUID

from django.core.exceptions import ValidationError
from django.db import models, transaction, DatabaseError
from django.db.models import Manager, QuerySet, Count, Sum, DecimalField, F
from django.db.models.functions import Coalesce
from django.utils.timezone import localtime
from django.utils.translation import gettext_lazy as _

from django_gl.exceptions import BatchStateError, BatchPostingError
from django_gl.models.gl_settings import GLSettingsModel
from django_gl.models.mixins import CreateUpdateMixIn, OptimisticLockMixIn, LoggingMixIn
from django_gl.models.sequence import SequenceStateModel, issue_number
from django_gl.models.signals import batch_posted, journal_posted, posting_failed, send_notification
from django_gl.models.utils import lazy_loader
from django_gl.settings import DJANGO_GL_AMOUNT_DECIMAL_PLACES, DJANGO_GL_AMOUNT_MAX_DIGITS, DJANGO_GL_ZERO
from django_gl.validation import Violation, validate_journal, PERIOD_LOCKED


class BatchModelQuerySet(QuerySet):

    def for_tenant(self, tenant_id: Union[UUID, str]):
        return self.filter(tenant_id__exact=tenant_id)

    def draft(self):
        return self.filter(status=BatchModel.STATUS_DRAFT)

    def ready(self):
        return self.filter(status=BatchModel.STATUS_READY)

    def posted(self):
        return self.filter(status=BatchModel.STATUS_POSTED)

    def cancelled(self):
        return self.filter(status=BatchModel.STATUS_CANCELLED)

    def open(self):
        """
        Batches that still accept changes (Draft or Ready).
        """
        return self.filter(status__in=[BatchModel.STATUS_DRAFT, BatchModel.STATUS_READY])


class BatchModelManager(Manager):

    def for_tenant(self, tenant_id: Union[UUID, str]) -> BatchModelQuerySet:
        return self.get_queryset().for_tenant(tenant_id)

    def create_batch(self,
                     tenant_id: Union[UUID, str],
                     actor_id: Union[UUID, str],
                     name: str,
                     description: Optional[str] = None):
        """
        Creates a new Draft batch with the next batch number of the tenant.

        Parameters
        ----------
        tenant_id: UUID
            The tenant (company) owning the batch.
        actor_id: UUID
            The user creating the batch.
        name: str
            A short name for the batch, e.g. "Payroll 2024-05".
        description: str
            Optional batch description.

        Returns
        -------
        BatchModel
            The newly created Draft batch.
        """
        with transaction.atomic():
            batch_sequence, batch_number = issue_number(tenant_id, SequenceStateModel.KEY_BATCH)
            batch_model = self.model(
                tenant_id=tenant_id,
                batch_sequence=batch_sequence,
                batch_number=batch_number,
                name=name,
                description=description,
                created_by=actor_id
            )
            batch_model.full_clean()
            batch_model.save()
        batch_model.send_log(f'Created batch {batch_model.batch_number} for tenant {tenant_id}.')
        return batch_model


class BatchModelAbstract(CreateUpdateMixIn, OptimisticLockMixIn, LoggingMixIn):
    """
    The base implementation of the BatchModel.

    Attributes
    ----------
    uuid : UUID
        This is a unique primary key generated for the table. The default value of this field is uuid4().
    tenant_id: UUID
        The tenant (company) owning this batch.
    batch_number: str
        Sequencer-issued identifier, unique per tenant. E.g. BATCH-000001.
    batch_sequence: int
        The counter value behind the batch number.
    name: str
        Short name of the batch.
    description: str
        Optional description.
    status: str
        Draft, Ready, Posted or Cancelled.
    created_by: UUID
        The user that created the batch.
    reviewed_by: UUID
        The user that marked the batch as Ready.
    reviewed_at: datetime
        When the batch was marked as Ready.
    posted_by: UUID
        The user that posted the batch.
    posted_at: datetime
        The posting timestamp, shared by every member journal.
    total_journals: int
        Number of member journals.
    total_debits: Decimal
        Sum of the DEBITs of every member journal.
    total_credits: Decimal
        Sum of the CREDITs of every member journal.
    """
    STATUS_DRAFT = 'draft'
    STATUS_READY = 'ready'
    STATUS_POSTED = 'posted'
    STATUS_CANCELLED = 'cancelled'

    STATUS_CHOICES = [
        (STATUS_DRAFT, _('Draft')),
        (STATUS_READY, _('Ready')),
        (STATUS_POSTED, _('Posted')),
        (STATUS_CANCELLED, _('Cancelled')),
    ]

    uuid = models.UUIDField(default=uuid4, editable=False, primary_key=True)
    tenant_id = models.UUIDField(verbose_name=_('Tenant ID'))
    batch_number = models.CharField(max_length=30, editable=False, verbose_name=_('Batch Number'))
    batch_sequence = models.BigIntegerField(editable=False, verbose_name=_('Batch Sequence'))
    name = models.CharField(max_length=150, verbose_name=_('Batch Name'))
    description = models.TextField(null=True, blank=True, verbose_name=_('Batch Description'))
    status = models.CharField(max_length=10,
                              choices=STATUS_CHOICES,
                              default=STATUS_DRAFT,
                              editable=False,
                              verbose_name=_('Status'))
    created_by = models.UUIDField(verbose_name=_('Created By'))
    reviewed_by = models.UUIDField(null=True, blank=True, editable=False, verbose_name=_('Reviewed By'))
    reviewed_at = models.DateTimeField(null=True, blank=True, editable=False, verbose_name=_('Reviewed At'))
    posted_by = models.UUIDField(null=True, blank=True, editable=False, verbose_name=_('Posted By'))
    posted_at = models.DateTimeField(null=True, blank=True, editable=False, verbose_name=_('Posted At'))
    total_journals = models.PositiveIntegerField(default=0, editable=False, verbose_name=_('Total Journals'))
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

    objects = BatchModelManager.from_queryset(queryset_class=BatchModelQuerySet)()

    class Meta:
        abstract = True
        ordering = ['tenant_id', 'batch_sequence']
        verbose_name = _('Batch')
        verbose_name_plural = _('Batches')
        unique_together = [
            ('tenant_id', 'batch_number'),
            ('tenant_id', 'batch_sequence')
        ]
        indexes = [
            models.Index(fields=['tenant_id', 'status']),
        ]

    def __str__(self):
        return f'{self.batch_number} ({self.get_status_display()}): {self.name}'

    # State...
    def is_draft(self) -> bool:
        return self.status == self.STATUS_DRAFT

    def is_ready(self) -> bool:
        return self.status == self.STATUS_READY

    def is_posted(self) -> bool:
        return self.status == self.STATUS_POSTED

    def is_cancelled(self) -> bool:
        return self.status == self.STATUS_CANCELLED

    def is_open(self) -> bool:
        return self.is_draft() or self.is_ready()

    def can_edit(self) -> bool:
        return self.is_open()

    def can_mark_as_ready(self) -> bool:
        return self.is_draft()

    def can_mark_as_draft(self) -> bool:
        return self.is_ready()

    def can_post(self) -> bool:
        return self.is_open()

    def can_cancel(self) -> bool:
        return self.is_open()

    def get_journals_queryset(self):
        JournalModel = lazy_loader.get_journal_model()
        return JournalModel.objects.for_batch(self).order_by('journal_sequence')

    def get_summary(self) -> Dict:
        return {
            'id': self.uuid,
            'batch_number': self.batch_number,
            'status': self.status,
            'total_journals': self.total_journals,
            'total_debits': self.total_debits,
            'total_credits': self.total_credits,
        }

    def recompute_totals(self, commit: bool = False):
        """
        Recomputes the member count and the DEBIT/CREDIT totals from the member journals.

        Parameters
        ----------
        commit: bool
            Persists the new totals with a versioned write. Defaults to False.
        """
        totals = self.get_journals_queryset().aggregate(
            total_journals=Count('uuid'),
            total_debits=Coalesce(Sum('total_debits'), DJANGO_GL_ZERO, output_field=DecimalField()),
            total_credits=Coalesce(Sum('total_credits'), DJANGO_GL_ZERO, output_field=DecimalField())
        )
        self.total_journals = totals['total_journals']
        self.total_debits = totals['total_debits']
        self.total_credits = totals['total_credits']

        if commit:
            self.save_versioned(update_fields=[
                'total_journals',
                'total_debits',
                'total_credits'
            ])

    def lock_for_edit(self):
        """
        Locks the batch row for the rest of the current transaction and verifies that the batch still accepts
        changes from this instance.
        """
        batch_model = self.__class__.objects.select_for_update().get(uuid__exact=self.uuid)
        if not batch_model.is_open():
            raise BatchStateError(
                message=_(f'Batch {batch_model.batch_number} is {batch_model.get_status_display()} '
                          'and cannot be modified.'),
                code='batch_closed'
            )
        self.check_version(batch_model.version)
        return batch_model

    def clear_review(self):
        self.status = self.STATUS_DRAFT
        self.reviewed_by = None
        self.reviewed_at = None

    def reset_review(self):
        """
        Sends the batch back to Draft and recomputes its totals after its members or their entries changed. The
        batch row must be locked by the caller.
        """
        self.clear_review()
        self.recompute_totals(commit=False)
        self.save_versioned(update_fields=[
            'status',
            'reviewed_by',
            'reviewed_at',
            'total_journals',
            'total_debits',
            'total_credits'
        ])

    # Members...
    def add_journal(self, journal_model):
        """
        Adds a Draft journal to the batch. A Ready batch goes back to Draft and must be reviewed again.

        Parameters
        ----------
        journal_model: JournalModel
            A Draft journal of the same tenant that does not belong to another batch.
        """
        JournalModel = lazy_loader.get_journal_model()
        with transaction.atomic():
            self.lock_for_edit()
            member_model = JournalModel.objects.select_for_update().get(uuid__exact=journal_model.uuid)

            if str(member_model.tenant_id) != str(self.tenant_id):
                raise BatchStateError(
                    message=_(f'Journal {member_model.journal_number} belongs to another tenant.'),
                    code='tenant_mismatch'
                )
            if not member_model.is_draft():
                raise BatchStateError(
                    message=_(f'Journal {member_model.journal_number} is not Draft and cannot be added to a batch.'),
                    code='journal_not_draft'
                )
            if member_model.batch_id == self.uuid:
                return member_model
            if member_model.batch_id is not None:
                raise BatchStateError(
                    message=_(f'Journal {member_model.journal_number} already belongs to batch '
                              f'{member_model.batch.batch_number}.'),
                    code='journal_in_other_batch'
                )

            member_model.batch = self
            member_model.save_versioned(update_fields=['batch'])
            self.reset_review()

        journal_model.batch = self
        journal_model.version = member_model.version
        self.send_log(f'Added journal {member_model.journal_number} to batch {self.batch_number}.')
        return member_model

    def remove_journal(self, journal_model):
        """
        Removes a journal from the batch. The journal stays Draft and may be posted on its own.
        """
        JournalModel = lazy_loader.get_journal_model()
        with transaction.atomic():
            self.lock_for_edit()
            member_model = JournalModel.objects.select_for_update().get(uuid__exact=journal_model.uuid)
            if member_model.batch_id != self.uuid:
                raise BatchStateError(
                    message=_(f'Journal {member_model.journal_number} is not a member of batch {self.batch_number}.'),
                    code='not_a_member'
                )

            member_model.batch = None
            member_model.save_versioned(update_fields=['batch'])
            self.reset_review()

        journal_model.batch = None
        journal_model.version = member_model.version
        self.send_log(f'Removed journal {member_model.journal_number} from batch {self.batch_number}.')
        return member_model

    # Review...
    def mark_as_ready(self, reviewer_id: Union[UUID, str]):
        """
        Marks a reviewed Draft batch as Ready and records the reviewer.
        """
        with transaction.atomic():
            batch_model = self.lock_for_edit()
            if not batch_model.can_mark_as_ready():
                raise BatchStateError(
                    message=_(f'Batch {batch_model.batch_number} is {batch_model.get_status_display()}, '
                              'only Draft batches can be marked as Ready.'),
                    code='invalid_transition'
                )
            if not batch_model.get_journals_queryset().exists():
                raise BatchStateError(
                    message=_(f'Batch {batch_model.batch_number} has no journals.'),
                    code='empty_batch'
                )
            self.status = self.STATUS_READY
            self.reviewed_by = reviewer_id
            self.reviewed_at = localtime()
            self.save_versioned(update_fields=[
                'status',
                'reviewed_by',
                'reviewed_at'
            ])

    def mark_as_draft(self):
        with transaction.atomic():
            batch_model = self.lock_for_edit()
            if not batch_model.can_mark_as_draft():
                raise BatchStateError(
                    message=_(f'Batch {batch_model.batch_number} is not Ready.'),
                    code='invalid_transition'
                )
            self.clear_review()
            self.save_versioned(update_fields=[
                'status',
                'reviewed_by',
                'reviewed_at'
            ])

    def cancel(self):
        """
        Cancels a Draft or Ready batch. Member journals are released as unbatched Draft journals and are not
        deleted.
        """
        with transaction.atomic():
            self.lock_for_edit()
            released = self.get_journals_queryset().update(batch=None, version=F('version') + 1)
            self.status = self.STATUS_CANCELLED
            self.recompute_totals(commit=False)
            self.save_versioned(update_fields=[
                'status',
                'total_journals',
                'total_debits',
                'total_credits'
            ])
        self.send_log(f'Cancelled batch {self.batch_number}. Released {released} journals.')

    # Posting...
    def post(self, actor_id: Union[UUID, str], coa_provider=None):
        """
        Posts every member journal and the batch in a single database transaction.

        Every member is validated and checked against the period lock guard before anything is written. Any
        failure rejects the whole batch with the list of failing journals and their violations. Member journals
        are posted in ascending journal number order.

        Parameters
        ----------
        actor_id: UUID
            The user posting the batch.
        coa_provider: ChartOfAccountsProvider
            Optional Chart of Accounts used to validate account references. Defaults to the configured provider.

        Raises
        ------
        BatchStateError
            If the batch is empty, already posted, cancelled or not approved when approval is required.
        BatchPostingError
            If one or more member journals fail validation or the period lock guard. Nothing is posted.
        ConcurrencyConflictError
            If the batch was modified since this instance was loaded.
        """
        JournalModel = lazy_loader.get_journal_model()
        try:
            with transaction.atomic():
                batch_model = self.__class__.objects.select_for_update().get(uuid__exact=self.uuid)

                if batch_model.is_posted():
                    raise BatchStateError(
                        message=_(f'Batch {batch_model.batch_number} is already posted.'),
                        code='already_posted'
                    )
                if batch_model.is_cancelled():
                    raise BatchStateError(
                        message=_(f'Batch {batch_model.batch_number} is cancelled and cannot be posted.'),
                        code='batch_cancelled'
                    )
                self.check_version(batch_model.version)

                # batch, then member journals, then tenant settings...
                journal_list = list(
                    JournalModel.objects.select_for_update().filter(
                        batch__uuid__exact=batch_model.uuid
                    ).order_by('journal_sequence')
                )
                settings_model = GLSettingsModel.objects.for_tenant(batch_model.tenant_id, for_update=True)

                if settings_model.require_batch_approval and not batch_model.is_ready():
                    raise BatchStateError(
                        message=_(f'Batch {batch_model.batch_number} must be reviewed and marked as Ready '
                                  'before posting.'),
                        code='approval_required'
                    )
                if not journal_list:
                    raise BatchStateError(
                        message=_(f'Batch {batch_model.batch_number} has no journals.'),
                        code='empty_batch'
                    )

                failures = dict()
                for journal_model in journal_list:
                    violations = validate_journal(journal_model, coa_provider=coa_provider)
                    if violations:
                        failures[journal_model.journal_number] = violations
                if failures:
                    raise BatchPostingError(batch_number=batch_model.batch_number, failures=failures)

                for journal_model in journal_list:
                    if not settings_model.is_postable(journal_model.date):
                        failures[journal_model.journal_number] = [
                            Violation(code=PERIOD_LOCKED, message=settings_model.get_lock_reason(journal_model.date))
                        ]
                if failures:
                    raise BatchPostingError(batch_number=batch_model.batch_number,
                                            failures=failures,
                                            code='period_locked')

                posted_at = localtime()
                for journal_model in journal_list:
                    journal_model.mark_as_posted(actor_id=actor_id, posted_at=posted_at)

                batch_model.recompute_totals(commit=False)
                batch_model.status = self.STATUS_POSTED
                batch_model.posted_by = actor_id
                batch_model.posted_at = posted_at
                batch_model.save_versioned(update_fields=[
                    'status',
                    'posted_by',
                    'posted_at',
                    'total_journals',
                    'total_debits',
                    'total_credits'
                ])

                transaction.on_commit(
                    lambda: self.send_posted_notifications(batch_model=batch_model, journal_list=journal_list)
                )
        except (ValidationError, DatabaseError) as e:
            self.send_log(f'Batch {self.batch_number} failed to post: {e}', level=logging.WARNING, force=True)
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
        self.send_log(f'Posted batch {self.batch_number} with {self.total_journals} journals by {actor_id}.')

    def send_posted_notifications(self, batch_model, journal_list):
        JournalModel = lazy_loader.get_journal_model()
        for journal_model in journal_list:
            send_notification(
                journal_posted,
                sender=JournalModel,
                instance=journal_model,
                tenant_id=journal_model.tenant_id,
                summary=journal_model.get_summary()
            )
        summary = batch_model.get_summary()
        summary['journal_numbers'] = [j.journal_number for j in journal_list]
        send_notification(
            batch_posted,
            sender=self.__class__,
            instance=batch_model,
            tenant_id=batch_model.tenant_id,
            summary=summary
        )


class BatchModel(BatchModelAbstract):
    """
    Batch Model Base Class From Abstract.
    """

    class Meta(BatchModelAbstract.Meta):
        abstract = False
