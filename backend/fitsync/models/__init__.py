"""
Database Models

Import all models here to ensure they are registered with SQLAlchemy.

Note: Feature models are imported lazily to avoid circular imports.
Use direct imports from features/ modules when possible.
"""

from fitsync.models.base import Base


def _get_fit_models():
    """Lazy import of fitness sync models."""
    from fitsync.features.fit.models import SyncState
    return SyncState


__all__ = ["Base"]
