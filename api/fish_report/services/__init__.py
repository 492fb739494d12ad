# fish_report/services/__init__.py
"""
Business logic services for Fish Report.
"""
from fish_report.services.gas_client import GasClient, GasError
from fish_report.services.master import MasterCache, parse_master_csv
from fish_report.services.offline_queue import OfflineQueue
from fish_report.services.forms import IntakeForm, InventoryForm, LocalHistory
from fish_report.services.tickets import TicketListView

__all__ = [
    "GasClient",
    "GasError",
    "MasterCache",
    "parse_master_csv",
    "OfflineQueue",
    "IntakeForm",
    "InventoryForm",
    "LocalHistory",
    "TicketListView",
]
