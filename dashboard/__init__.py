"""
Dashboard module - Terminal status view for SignalLoop.

Built with Rich; each panel is a separate component.
"""

from dashboard.display import Dashboard

__all__ = ["Dashboard"]
