"""API route modules."""

from . import migrations, reconcile

__all__ = ["migrations", "reconcile"]
