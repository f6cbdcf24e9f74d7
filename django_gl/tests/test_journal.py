from datetime import timedelta
from decimal import Decimal

from django.db import transaction

from django_gl import validation
from django_gl.exceptions import (
    JournalValidationError,
    JournalStateError,
    EntryLockedError,
    ConcurrencyConflictError
)
from django_gl.models import JournalModel, EntryModel
from django_gl.tests.base import DjangoGLBaseTest


class JournalModelTest(DjangoGLBaseTest):

    def test_create_journal(self):
        journal_model = self.create_journal()
        self.assertTrue(journal_model.is_draft())
        self.assertEqual(journal_model.journal_number, 'JE-000001')
        self.assertEqual(journal_model.created_by, self.ACTOR_ID)
        self.assertEqual(journal_model.source, JournalModel.SOURCE_MANUAL)
        self.assertIsNone(journal_model.posted_by)
        self.assertIsNone(journal_model.posted_at)
        self.assertEqual(journal_model.total_debits, Decimal('0.00'))
        self.assertFalse(journal_model.can_post())

    def test_create_journal_with_source(self):
        journal_model = JournalModel.objects.create_journal(
            tenant_id=self.TENANT_ID,
            actor_id=self.ACTOR_ID,
            date=self.TX_DATE.isoformat(),
            source=JournalModel.SOURCE_PAYROLL,
            source_id='PR-2024-05'
        )
        journal_model.refresh_from_db()
        self.assertEqual(journal_model.date, self.TX_DATE)
        self.assertEqual(journal_model.source, 'payroll')
        self.assertEqual(journal_model.source_id, 'PR-2024-05')

    def test_add_entries_recomputes_totals(self):
        journal_model = self.create_journal()

        entry_model = journal_model.add_entry(self.ACCOUNT_CASH, debit_amount='500')
        self.assertEqual(entry_model.line_number, 1)
        self.assertEqual(journal_model.total_debits, Decimal('500.00'))
        self.assertFalse(journal_model.is_balanced)

        entry_model = journal_model.add_entry(self.ACCOUNT_PAYABLE, credit_amount=Decimal('500.00'))
        self.assertEqual(entry_model.line_number, 2)
        self.assertTrue(journal_model.is_balanced)
        self.assertTrue(journal_model.can_post())

        journal_model.refresh_from_db()
        self.assertEqual(journal_model.total_credits, Decimal('500.00'))
        self.assertTrue(journal_model.is_balanced)

    def test_add_invalid_entry(self):
        journal_model = self.create_journal()
        with self.assertRaises(JournalValidationError) as ctx:
            journal_model.add_entry(self.ACCOUNT_CASH, debit_amount='10.00', credit_amount='10.00')
        self.assertEqual(ctx.exception.violations[0].code, validation.BOTH_SIDES)
        self.assertEqual(journal_model.get_entries_queryset().count(), 0)

    def test_update_entry(self):
        journal_model = self.create_journal(entries=[
            (self.ACCOUNT_CASH, '500.00', 0),
            (self.ACCOUNT_PAYABLE, 0, '400.00'),
        ])
        self.assertFalse(journal_model.is_balanced)

        entry_model = journal_model.update_entry(2, credit_amount='500.00', description='Adjusted')
        self.assertEqual(entry_model.credit_amount, Decimal('500.00'))
        self.assertEqual(entry_model.description, 'Adjusted')
        self.assertTrue(journal_model.is_balanced)

    def test_update_entry_rejects_invalid_values(self):
        journal_model = self.create_balanced_journal()
        with self.assertRaises(JournalValidationError):
            journal_model.update_entry(1, credit_amount='500.00')
        with self.assertRaises(ValueError):
            journal_model.update_entry(1, line_number=5)
        with self.assertRaises(EntryModel.DoesNotExist):
            journal_model.update_entry(9, description='Missing')

    def test_remove_entry_keeps_lines_dense(self):
        journal_model = self.create_journal(entries=[
            (self.ACCOUNT_CASH, '100.00', 0),
            (self.ACCOUNT_REVENUE, '50.00', 0),
            (self.ACCOUNT_PAYABLE, 0, '100.00'),
        ])
        journal_model.remove_entry(2)
        entries = list(journal_model.get_entries_queryset().values_list('line_number', 'account_id'))
        self.assertEqual(entries, [(1, self.ACCOUNT_CASH), (2, self.ACCOUNT_PAYABLE)])
        self.assertTrue(journal_model.is_balanced)
        self.assertEqual(journal_model.total_debits, Decimal('100.00'))

    def test_post_balanced_journal(self):
        journal_model = self.create_balanced_journal(amount=Decimal('500.00'))
        journal_model.post(actor_id=self.ACTOR_ID, coa_provider=self.COA_PROVIDER)

        self.assertTrue(journal_model.is_posted())
        self.assertEqual(journal_model.posted_by, self.ACTOR_ID)
        self.assertIsNotNone(journal_model.posted_at)
        self.assertFalse(journal_model.can_edit())
        self.assertTrue(journal_model.can_reverse())

    def test_post_unbalanced_journal(self):
        journal_model = self.create_journal(entries=[
            (self.ACCOUNT_CASH, '500.00', 0),
            (self.ACCOUNT_PAYABLE, 0, '400.00'),
        ])
        with self.assertRaises(JournalValidationError) as ctx:
            journal_model.post(actor_id=self.ACTOR_ID, coa_provider=self.COA_PROVIDER)

        self.assertEqual([v.code for v in ctx.exception.violations], [validation.UNBALANCED])
        self.assertIn('unbalanced by 100.00', str(ctx.exception.message))
        journal_model.refresh_from_db()
        self.assertTrue(journal_model.is_draft())
        self.assertIsNone(journal_model.posted_by)

    def test_post_empty_journal(self):
        journal_model = self.create_journal()
        with self.assertRaises(JournalValidationError) as ctx:
            journal_model.post(actor_id=self.ACTOR_ID, coa_provider=self.COA_PROVIDER)
        self.assertEqual(ctx.exception.violations[0].code, validation.EMPTY_JOURNAL)

    def test_post_with_inactive_account(self):
        journal_model = self.create_journal(entries=[
            (self.ACCOUNT_CLOSED, '10.00', 0),
            (self.ACCOUNT_PAYABLE, 0, '10.00'),
        ])
        with self.assertRaises(JournalValidationError) as ctx:
            journal_model.post(actor_id=self.ACTOR_ID, coa_provider=self.COA_PROVIDER)
        self.assertEqual(ctx.exception.violations[0].code, validation.ACCOUNT_INACTIVE)

    def test_post_uses_configured_provider(self):
        journal_model = self.create_balanced_journal()
        with self.assertRaises(JournalValidationError) as ctx:
            journal_model.post(actor_id=self.ACTOR_ID)
        self.assertEqual(
            {v.code for v in ctx.exception.violations},
            {validation.ACCOUNT_NOT_FOUND}
        )

    def test_double_posting_is_rejected(self):
        journal_model = self.create_balanced_journal()
        journal_model.post(actor_id=self.ACTOR_ID, coa_provider=self.COA_PROVIDER)
        posted_at = journal_model.posted_at
        snapshot = self.get_entry_snapshot(journal_model)

        with self.assertRaises(JournalStateError) as ctx:
            journal_model.post(actor_id=self.REVIEWER_ID, coa_provider=self.COA_PROVIDER)
        self.assertEqual(ctx.exception.code, 'already_posted')

        journal_model.refresh_from_db()
        self.assertEqual(journal_model.posted_at, posted_at)
        self.assertEqual(journal_model.posted_by, self.ACTOR_ID)
        self.assertEqual(self.get_entry_snapshot(journal_model), snapshot)

    def test_stale_instance_cannot_post(self):
        journal_model = self.create_journal(entries=[
            (self.ACCOUNT_CASH, '500.00', 0),
            (self.ACCOUNT_PAYABLE, 0, '500.00'),
        ])
        stale_model = JournalModel.objects.get(uuid=journal_model.uuid)
        journal_model.add_entry(self.ACCOUNT_REVENUE, debit_amount='1.00')

        with self.assertRaises(ConcurrencyConflictError):
            stale_model.post(actor_id=self.ACTOR_ID, coa_provider=self.COA_PROVIDER)

    def test_concurrent_editors_conflict(self):
        journal_model = self.create_journal()
        other_editor = JournalModel.objects.get(uuid=journal_model.uuid)

        journal_model.add_entry(self.ACCOUNT_CASH, debit_amount='10.00')
        with self.assertRaises(ConcurrencyConflictError):
            other_editor.add_entry(self.ACCOUNT_PAYABLE, credit_amount='10.00')

        self.assertEqual(journal_model.get_entries_queryset().count(), 1)

        other_editor.refresh_from_db()
        other_editor.add_entry(self.ACCOUNT_PAYABLE, credit_amount='10.00')
        self.assertEqual(other_editor.get_entries_queryset().count(), 2)

    def test_posted_journal_is_immutable(self):
        journal_model = self.create_balanced_journal()
        journal_model.post(actor_id=self.ACTOR_ID, coa_provider=self.COA_PROVIDER)
        snapshot = self.get_entry_snapshot(journal_model)

        with self.assertRaises(EntryLockedError):
            journal_model.add_entry(self.ACCOUNT_CASH, debit_amount='1.00')
        with self.assertRaises(EntryLockedError):
            journal_model.update_entry(1, debit_amount='1.00')
        with self.assertRaises(EntryLockedError):
            journal_model.remove_entry(1)

        entry_model = journal_model.get_entries_queryset().first()
        entry_model.debit_amount = Decimal('1.00')
        with self.assertRaises(EntryLockedError):
            entry_model.save()
        with self.assertRaises(EntryLockedError), transaction.atomic():
            entry_model.delete()
        with self.assertRaises(EntryLockedError):
            EntryModel(journal=journal_model,
                       line_number=3,
                       account_id=self.ACCOUNT_CASH,
                       debit_amount=Decimal('1.00')).save()

        self.assertEqual(self.get_entry_snapshot(journal_model), snapshot)

    def test_posted_journal_header_is_immutable(self):
        journal_model = self.create_balanced_journal()
        journal_model.post(actor_id=self.ACTOR_ID, coa_provider=self.COA_PROVIDER)
        posted_date = journal_model.date
        posted_memo = journal_model.memo

        journal_model.status = JournalModel.STATUS_DRAFT
        journal_model.date = posted_date - timedelta(days=400)
        journal_model.memo = 'Rewritten'
        with self.assertRaises(EntryLockedError) as ctx:
            journal_model.save()
        self.assertEqual(ctx.exception.code, 'journal_posted')

        journal_model.refresh_from_db()
        self.assertTrue(journal_model.is_posted())
        self.assertEqual(journal_model.date, posted_date)
        self.assertEqual(journal_model.memo, posted_memo)

        with self.assertRaises(EntryLockedError):
            journal_model.add_entry(self.ACCOUNT_CASH, debit_amount='1.00')
        with self.assertRaises(EntryLockedError), transaction.atomic():
            JournalModel.objects.filter(uuid=journal_model.uuid).delete()
        self.assertEqual(journal_model.get_entries_queryset().count(), 2)

    def test_draft_journal_header_can_be_saved(self):
        journal_model = self.create_balanced_journal()
        journal_model.memo = 'Accrued payroll'
        journal_model.save()
        journal_model.refresh_from_db()
        self.assertEqual(journal_model.memo, 'Accrued payroll')

    def test_amounts_must_be_whole_cents(self):
        journal_model = self.create_journal()
        for amount in ('100.004', 'abc', 'Infinity'):
            with self.assertRaises(JournalValidationError) as ctx:
                journal_model.add_entry(self.ACCOUNT_CASH, debit_amount=amount)
            self.assertEqual(ctx.exception.violations[0].code, validation.INVALID_AMOUNT)
        self.assertEqual(journal_model.get_entries_queryset().count(), 0)

        journal_model.add_entry(self.ACCOUNT_CASH, debit_amount='100.00')
        with self.assertRaises(JournalValidationError) as ctx:
            journal_model.update_entry(1, debit_amount='100.005')
        self.assertEqual(ctx.exception.violations[0].code, validation.INVALID_AMOUNT)
        self.assertEqual(journal_model.get_entries_queryset().get().debit_amount, Decimal('100.00'))

    def test_delete_draft_journal(self):
        journal_model = self.create_balanced_journal()
        journal_model.delete()
        self.assertFalse(JournalModel.objects.exists())
        self.assertFalse(EntryModel.objects.exists())

    def test_posted_journal_cannot_be_deleted(self):
        journal_model = self.create_balanced_journal()
        journal_model.post(actor_id=self.ACTOR_ID, coa_provider=self.COA_PROVIDER)
        self.assertFalse(journal_model.can_delete())

        with self.assertRaises(JournalStateError):
            journal_model.delete()
        self.assertTrue(JournalModel.objects.posted().filter(uuid=journal_model.uuid).exists())
        self.assertEqual(EntryModel.objects.count(), 2)

    def test_batch_member_must_post_with_batch(self):
        journal_model = self.create_balanced_journal()
        batch_model = self.create_batch()
        batch_model.add_journal(journal_model)
        self.assertFalse(journal_model.can_post())

        with self.assertRaises(JournalStateError) as ctx:
            journal_model.post(actor_id=self.ACTOR_ID, coa_provider=self.COA_PROVIDER)
        self.assertEqual(ctx.exception.code, 'batch_member')
        self.assertIn(batch_model.batch_number, str(ctx.exception.message))

    def test_posted_journals_stay_balanced(self):
        for amount in ('10.00', '1234.56', '0.01'):
            journal_model = self.create_balanced_journal(amount=Decimal(amount))
            journal_model.post(actor_id=self.ACTOR_ID, coa_provider=self.COA_PROVIDER)

        for journal_model in JournalModel.objects.posted():
            entries = journal_model.get_entries_queryset()
            self.assertEqual(
                sum(e.debit_amount for e in entries),
                sum(e.credit_amount for e in entries)
            )
            self.assertTrue(journal_model.is_balanced)
