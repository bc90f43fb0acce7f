"""
Ordered schema migrations for the metrics database.

Steps live in ``migrations/versions/`` as ``<14-digit version>_<description>.sql``
and are applied in ascending name order, exactly once, each inside its own
exclusive transaction. Applied steps are recorded in the ``_migrations`` ledger.
"""

from .runner import VERSIONS_DIR, MigrationRunner, Step, ensure_migrated, load_steps

__all__ = ["VERSIONS_DIR", "MigrationRunner", "Step", "ensure_migrated", "load_steps"]
