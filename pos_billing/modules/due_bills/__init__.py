"""
Due-bills package exports.
"""
from .controller import DueBillsController, DueBill, DueSummary
from .model import DueBillsTableModel

__all__ = ["DueBillsController", "DueBill", "DueSummary", "DueBillsTableModel"]
