"""CRM account repository."""

from pmo.models.account import Account
from pmo.repositories.base_repo import TenantScopedRepository


class AccountRepository(TenantScopedRepository[Account]):
    model = Account
    resource_name = "Account"
