"""
Database helpers for Cinelog backend scripts/services.
"""

from cinelog_backend.db.postgrest_errors import is_missing_relation_error, is_unique_violation
from cinelog_backend.db.supabase import create_supabase_admin_client

__all__ = [
    "create_supabase_admin_client",
    "is_missing_relation_error",
    "is_unique_violation",
]
