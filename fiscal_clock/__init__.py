"""
Fiscal Clock - Live U.S. fiscal dashboard for the terminal and desktop.

Architecture:
- datafeed/: HTTP endpoints, response cache, retry/backoff fetch client
- engine/: Normalizers, metric dependency graph, live projection, scheduling
- ui/: Tile dashboard + historical debt chart (Textual TUI, PyQt6 window)
"""

__version__ = "0.1.0"
