from datetime import timedelta
from decimal import Decimal

from django_gl.models import JournalModel, EntryModel
from django_gl.tests.base import DjangoGLBaseTest


class ReportQuerySurfaceTest(DjangoGLBaseTest):

    def setUp(self) -> None:
        super().setUp()
        self.early_date = self.TX_DATE - timedelta(days=10)

        self.payroll_je = self.create_journal(entries=[
            (self.ACCOUNT_CASH, '300.00', 0, ('payroll_run', 'PR-1')),
            (self.ACCOUNT_PAYABLE, 0, '300.00', ('payroll_run', 'PR-1')),
        ], date=self.early_date, source=JournalModel.SOURCE_PAYROLL)
        self.payroll_je.post(actor_id=self.ACTOR_ID, coa_provider=self.COA_PROVIDER)

        self.manual_je = self.create_journal(entries=[
            (self.ACCOUNT_CASH, '50.00', 0),
            (self.ACCOUNT_REVENUE, 0, '50.00'),
        ])
        self.manual_je.post(actor_id=self.ACTOR_ID, coa_provider=self.COA_PROVIDER)

        self.batch_model = self.create_batch()
        self.batch_je = self.create_balanced_journal(amount=Decimal('20.00'))
        self.batch_model.add_journal(self.batch_je)
        self.batch_model.post(actor_id=self.ACTOR_ID, coa_provider=self.COA_PROVIDER)

        self.draft_je = self.create_balanced_journal(amount=Decimal('999.00'))
        self.foreign_je = self.create_balanced_journal(amount=Decimal('777.00'), tenant_id=self.OTHER_TENANT_ID)
        self.foreign_je.post(actor_id=self.ACTOR_ID, coa_provider=self.COA_PROVIDER)

    def test_reports_only_see_posted_entries_of_tenant(self):
        entry_qs = EntryModel.objects.for_reports(self.TENANT_ID)
        self.assertEqual(entry_qs.count(), 6)
        self.assertFalse(entry_qs.filter(journal=self.draft_je).exists())
        self.assertFalse(entry_qs.filter(journal=self.foreign_je).exists())
        for entry_model in entry_qs:
            self.assertTrue(entry_model.journal.is_posted())

        journal_qs = JournalModel.objects.for_reports(self.TENANT_ID)
        self.assertEqual(set(journal_qs), {self.payroll_je, self.manual_je, self.batch_je})

    def test_date_range(self):
        entry_qs = EntryModel.objects.for_reports(self.TENANT_ID)
        self.assertEqual(entry_qs.to_date(self.early_date).count(), 2)
        self.assertEqual(entry_qs.from_date(self.early_date + timedelta(days=1)).count(), 4)
        self.assertEqual(
            entry_qs.from_date(self.early_date.isoformat()).to_date(self.TX_DATE.isoformat()).count(), 6
        )
        with self.assertRaises(ValueError):
            entry_qs.from_date('last week')

    def test_accounts(self):
        entry_qs = EntryModel.objects.for_reports(self.TENANT_ID)
        self.assertEqual(entry_qs.for_accounts(self.ACCOUNT_CASH).count(), 3)
        self.assertEqual(entry_qs.for_accounts([self.ACCOUNT_REVENUE, self.ACCOUNT_PAYABLE]).count(), 3)

        journal_qs = JournalModel.objects.for_reports(self.TENANT_ID).for_accounts(self.ACCOUNT_REVENUE)
        self.assertEqual(list(journal_qs), [self.manual_je])

    def test_source(self):
        entry_qs = EntryModel.objects.for_reports(self.TENANT_ID).for_source(JournalModel.SOURCE_PAYROLL)
        self.assertEqual(entry_qs.count(), 2)
        journal_qs = JournalModel.objects.for_reports(self.TENANT_ID).for_source(['payroll', 'manual'])
        self.assertEqual(journal_qs.count(), 3)

    def test_batch(self):
        entry_qs = EntryModel.objects.for_reports(self.TENANT_ID)
        self.assertEqual(entry_qs.for_batch(self.batch_model).count(), 2)
        self.assertEqual(entry_qs.for_batch(self.batch_model.uuid).count(), 2)
        self.assertEqual(list(JournalModel.objects.for_reports(self.TENANT_ID).for_batch(self.batch_model)),
                         [self.batch_je])

    def test_entity_link(self):
        entry_qs = EntryModel.objects.for_reports(self.TENANT_ID)
        self.assertEqual(entry_qs.for_entity_link('payroll_run').count(), 2)
        self.assertEqual(entry_qs.for_entity_link('payroll_run', 'PR-1').count(), 2)
        self.assertEqual(entry_qs.for_entity_link('payroll_run', 'PR-2').count(), 0)
        self.assertEqual(
            list(JournalModel.objects.for_reports(self.TENANT_ID).for_entity_link('payroll_run', 'PR-1')),
            [self.payroll_je]
        )

    def test_account_balances(self):
        balances = {
            b['account_id']: (b['debits'], b['credits'])
            for b in EntryModel.objects.for_reports(self.TENANT_ID).account_balances()
        }
        self.assertEqual(balances, {
            self.ACCOUNT_CASH: (Decimal('370.00'), Decimal('0.00')),
            self.ACCOUNT_PAYABLE: (Decimal('0.00'), Decimal('320.00')),
            self.ACCOUNT_REVENUE: (Decimal('0.00'), Decimal('50.00')),
        })
