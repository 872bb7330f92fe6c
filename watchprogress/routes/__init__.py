"""
Flask Blueprints.

Each blueprint accesses the ``ProgressServer`` instance via
``current_app.config['server']``.
"""

from .observability_bp import observability_bp
from .progress_bp import progress_bp

__all__ = ["observability_bp", "progress_bp"]
