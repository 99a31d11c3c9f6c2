"""Dashboard Águia - reconciliation, business-day and payment services."""

__version__ = "0.1.0"

from aguia_dashboard.business_days import BusinessCalendar, HolidayCache, PaymentDateKind
from aguia_dashboard.clients import SupabaseClient
from aguia_dashboard.config import configure_logging, get_settings
from aguia_dashboard.daily_workers import DailyWorkerService
from aguia_dashboard.fixed_costs import FixedCostService
from aguia_dashboard.models import BatchResult, Direction, OperationResult
from aguia_dashboard.reconciliation import ReconciliationEngine
from aguia_dashboard.repository import Repository
from aguia_dashboard.statements import StatementService, compute_line_hash
from aguia_dashboard.transactions import TransactionService

__all__ = [
    # Version
    "__version__",
    # Store
    "SupabaseClient",
    "Repository",
    # Services
    "BusinessCalendar",
    "HolidayCache",
    "PaymentDateKind",
    "StatementService",
    "compute_line_hash",
    "ReconciliationEngine",
    "TransactionService",
    "FixedCostService",
    "DailyWorkerService",
    # Results
    "BatchResult",
    "OperationResult",
    "Direction",
    # Config
    "get_settings",
    "configure_logging",
]
