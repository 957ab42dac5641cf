"""
Flask blueprints an embedding application can register to expose the
facade's state.
"""

from .observability_bp import observability_bp

__all__ = ["observability_bp"]
