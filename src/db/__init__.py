"""Database modules (Supabase PostgreSQL)."""

from src.db.billing import (
    get_active_subscription,
    get_credit_package,
    list_credit_packages,
    record_credit_transaction,
)
from src.db.supabase import (
    create_generation_job,
    create_project,
    get_client,
    get_generation_job,
    get_project,
    get_project_draft,
    list_pending_generation_jobs,
    list_projects_with_generation,
    save_project_draft,
    update_generation_job,
)

__all__ = [
    "get_client",
    "create_project",
    "get_project",
    "list_projects_with_generation",
    "get_project_draft",
    "save_project_draft",
    "create_generation_job",
    "get_generation_job",
    "list_pending_generation_jobs",
    "update_generation_job",
    "get_active_subscription",
    "record_credit_transaction",
    "list_credit_packages",
    "get_credit_package",
]
