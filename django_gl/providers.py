"""
Django GL created on top of the Django Ledger engine.
Copyright© EDMA Group Inc licensed under the GPLv3 Agreement.

The Chart of Accounts is owned by another system. The posting engine only asks whether an account exists and
whether it can still receive postings, through the ChartOfAccountsProvider interface. The provider used by
default is configured with the DJANGO_GL_CHART_OF_ACCOUNTS_PROVIDER setting (dotted path to a class).
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, Optional, Tuple, Union
from uuid import UUID

from django.conf import settings
from django.utils.module_loading import import_string

from django_gl.exceptions import DjangoGLConfigurationError


@dataclass(frozen=True)
class AccountInfo:
    exists: bool
    is_active: bool = False
    account_type: Optional[str] = None


ACCOUNT_NOT_FOUND = AccountInfo(exists=False)


class ChartOfAccountsProvider(ABC):

    @abstractmethod
    def account_exists(self, tenant_id: Union[UUID, str], account_id: str) -> AccountInfo:
        """
        Looks up an account of the tenant's Chart of Accounts.

        Parameters
        ----------
        tenant_id: UUID
            The company/tenant owning the Chart of Accounts.
        account_id: str
            The account reference used on journal entries.

        Returns
        -------
        AccountInfo
            Existence, active/closed status and account type.
        """


class InMemoryChartOfAccountsProvider(ChartOfAccountsProvider):
    """
    A Chart of Accounts kept in a dictionary. Used by the development environment and the test suite.
    """

    def __init__(self, accounts: Optional[Dict[Tuple[str, str], AccountInfo]] = None):
        self.accounts = dict(accounts) if accounts else dict()

    def register(self,
                 tenant_id: Union[UUID, str],
                 account_id: str,
                 account_type: str,
                 is_active: bool = True) -> AccountInfo:
        info = AccountInfo(exists=True, is_active=is_active, account_type=account_type)
        self.accounts[(str(tenant_id), str(account_id))] = info
        return info

    def close(self, tenant_id: Union[UUID, str], account_id: str):
        info = self.accounts[(str(tenant_id), str(account_id))]
        self.accounts[(str(tenant_id), str(account_id))] = AccountInfo(
            exists=True,
            is_active=False,
            account_type=info.account_type
        )

    def account_exists(self, tenant_id: Union[UUID, str], account_id: str) -> AccountInfo:
        return self.accounts.get((str(tenant_id), str(account_id)), ACCOUNT_NOT_FOUND)


def get_coa_provider(provider: Optional[ChartOfAccountsProvider] = None) -> ChartOfAccountsProvider:
    """
    Returns the given provider or an instance of the configured DJANGO_GL_CHART_OF_ACCOUNTS_PROVIDER class.
    """
    if provider is not None:
        return provider

    provider_path = getattr(settings, 'DJANGO_GL_CHART_OF_ACCOUNTS_PROVIDER', None)
    if not provider_path:
        raise DjangoGLConfigurationError(
            'No Chart of Accounts provider configured. '
            'Set DJANGO_GL_CHART_OF_ACCOUNTS_PROVIDER or pass coa_provider explicitly.'
        )
    try:
        provider_class = import_string(provider_path)
    except ImportError as e:
        raise DjangoGLConfigurationError(f'Cannot import Chart of Accounts provider {provider_path}: {e}')

    if not isinstance(provider_class, type) or not issubclass(provider_class, ChartOfAccountsProvider):
        raise DjangoGLConfigurationError(f'{provider_path} must subclass ChartOfAccountsProvider.')
    return provider_class()
