"""Show/trial/class/entry reconciliation between the local trial database and Supabase."""

from .local import Entry, LocalStore, Show, Trial, TrialClass
from .service import SyncService
from .settings import SupabaseSettings
from .status import Decision, Direction, LicenseStatus, ResultStatus, Scope

__all__ = [
    "Decision",
    "Direction",
    "Entry",
    "LicenseStatus",
    "LocalStore",
    "ResultStatus",
    "Scope",
    "Show",
    "SupabaseSettings",
    "SyncService",
    "Trial",
    "TrialClass",
]
