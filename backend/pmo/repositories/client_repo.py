"""Client repository."""

from typing import List

from pmo.models.client import Client
from pmo.repositories.base_repo import TenantScopedRepository


class ClientRepository(TenantScopedRepository[Client]):
    model = Client
    resource_name = "Client"

    def list_active(self, limit: int = 100, offset: int = 0) -> List[Client]:
        return self.find_many({"archived": False}, order_by="name", limit=limit, offset=offset)

    def purge_archived(self) -> int:
        return self.delete_many({"archived": True})
