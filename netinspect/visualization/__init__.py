"""
Network Inspector Visualization Package.

Provides rich terminal UI for live transaction inspection.
"""

from .tui import InspectorTUI
from .detail_panel import DetailPanel
from .transaction_log import TransactionLog

__all__ = [
    'InspectorTUI',
    'DetailPanel',
    'TransactionLog',
]
