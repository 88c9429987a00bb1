"""
Storage engine components.
"""

from kvexplorer.engine.engine import Engine

__all__ = ["Engine"]
