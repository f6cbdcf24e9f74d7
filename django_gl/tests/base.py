from datetime import timedelta
from decimal import Decimal
from logging import getLogger, DEBUG
from typing import Iterable, Optional, Tuple
from uuid import uuid4

from django.test import TestCase
from django.utils.timezone import localdate
from faker import Faker

from django_gl.models import GLSettingsModel, JournalModel, BatchModel
from django_gl.providers import InMemoryChartOfAccountsProvider


class DjangoGLBaseTest(TestCase):
    FAKER = Faker(['en_US'])
    TENANT_ID = None
    OTHER_TENANT_ID = None
    ACTOR_ID = None
    REVIEWER_ID = None
    TX_DATE = None
    COA_PROVIDER = None
    logger = None

    ACCOUNT_CASH = '100'
    ACCOUNT_PAYABLE = '200'
    ACCOUNT_CLOSED = '300'
    ACCOUNT_REVENUE = '400'

    def setUp(self) -> None:
        self.logger = getLogger(__name__)
        self.logger.setLevel(level=DEBUG)

        self.TENANT_ID = uuid4()
        self.OTHER_TENANT_ID = uuid4()
        self.ACTOR_ID = uuid4()
        self.REVIEWER_ID = uuid4()
        self.TX_DATE = localdate() - timedelta(days=1)

        self.COA_PROVIDER = InMemoryChartOfAccountsProvider()
        for tenant_id in (self.TENANT_ID, self.OTHER_TENANT_ID):
            self.COA_PROVIDER.register(tenant_id, self.ACCOUNT_CASH, account_type='asset')
            self.COA_PROVIDER.register(tenant_id, self.ACCOUNT_PAYABLE, account_type='liability')
            self.COA_PROVIDER.register(tenant_id, self.ACCOUNT_CLOSED, account_type='expense', is_active=False)
            self.COA_PROVIDER.register(tenant_id, self.ACCOUNT_REVENUE, account_type='income')

    def get_gl_settings(self, tenant_id=None, **updates) -> GLSettingsModel:
        settings_model = GLSettingsModel.objects.for_tenant(tenant_id or self.TENANT_ID)
        if updates:
            for k, v in updates.items():
                setattr(settings_model, k, v)
            settings_model.full_clean()
            settings_model.save()
        return settings_model

    def create_journal(self,
                       entries: Optional[Iterable[Tuple]] = None,
                       tenant_id=None,
                       date=None,
                       source: Optional[str] = None,
                       memo: Optional[str] = None) -> JournalModel:
        """
        Creates a Draft journal. Entries are (account_id, debit_amount, credit_amount) tuples and may carry an
        entity link as a fourth (entity_type, entity_id) element.
        """
        journal_model = JournalModel.objects.create_journal(
            tenant_id=tenant_id or self.TENANT_ID,
            actor_id=self.ACTOR_ID,
            date=date or self.TX_DATE,
            memo=memo or self.FAKER.sentence(),
            source=source
        )
        for entry in entries or list():
            account_id, debit_amount, credit_amount = entry[:3]
            entity_type, entity_id = entry[3] if len(entry) > 3 else (None, None)
            journal_model.add_entry(
                account_id=account_id,
                debit_amount=debit_amount,
                credit_amount=credit_amount,
                description=self.FAKER.bs(),
                entity_type=entity_type,
                entity_id=entity_id
            )
        return journal_model

    def create_balanced_journal(self, amount: Decimal = Decimal('500.00'), **kwargs) -> JournalModel:
        return self.create_journal(
            entries=[
                (self.ACCOUNT_CASH, amount, 0),
                (self.ACCOUNT_PAYABLE, 0, amount),
            ],
            **kwargs
        )

    def create_batch(self, tenant_id=None) -> BatchModel:
        return BatchModel.objects.create_batch(
            tenant_id=tenant_id or self.TENANT_ID,
            actor_id=self.ACTOR_ID,
            name=self.FAKER.catch_phrase(),
            description=self.FAKER.sentence()
        )

    def get_entry_snapshot(self, journal_model: JournalModel):
        return list(journal_model.get_entries_queryset().values_list(
            'line_number',
            'account_id',
            'debit_amount',
            'credit_amount',
            'description'
        ))
