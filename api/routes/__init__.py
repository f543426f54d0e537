"""
API Routes for the lead qualification engine.
"""

from . import conversations, leads

__all__ = ["conversations", "leads"]
