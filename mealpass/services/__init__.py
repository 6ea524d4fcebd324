"""
Business logic services.
Contains service layer implementations for core business operations.
"""

from .catering_service import CateringService
from .export_service import ExportService
from .lookup_service import LookupService
from .selection_service import SelectionService
from .slot_service import SlotService
from .stats_service import StatsService
from .validation_service import ValidationService

__all__ = [
    "CateringService",
    "ExportService",
    "LookupService",
    "SelectionService",
    "SlotService",
    "StatsService",
    "ValidationService",
]
