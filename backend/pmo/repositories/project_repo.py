"""Project repository."""

from typing import Dict, List, Sequence

from pmo.models.project import Project, ProjectStatus
from pmo.repositories.base_repo import TenantScopedRepository


class ProjectRepository(TenantScopedRepository[Project]):
    model = Project
    resource_name = "Project"

    def list_for_client(self, client_id: str) -> List[Project]:
        return self.find_many({"client_id": client_id}, order_by="-created_at")

    def count_by_status(self) -> Dict[str, int]:
        """Project counts per status for the current tenant."""
        counts = {status.value: 0 for status in ProjectStatus}
        for status, total in self.group_by("status"):
            key = status.value if isinstance(status, ProjectStatus) else str(status)
            counts[key] = total
        return counts

    def set_status(self, project_ids: Sequence[str], status: ProjectStatus) -> int:
        """Set the status of several projects. Ids outside the tenant are not counted."""
        return self.update_many({"status": status}, {"id": list(project_ids)})
