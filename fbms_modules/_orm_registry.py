"""
Module ORM Registry (``fbms_modules._orm_registry``).

Responsibility
--------------
Ensure every SQLAlchemy ORM model is imported so that ``Base.metadata``
holds all table definitions, and every append-only model has registered
itself with the immutability listeners, before tables are created.

Architecture position
---------------------
**Modules layer** -- utility.  Imports sibling ``fbms_modules`` packages and
``fbms_kernel`` (allowed: modules -> kernel).  MUST NOT be imported by
``fbms_kernel``.

Usage
-----
Entrypoints and ``tests/conftest.py`` call ``create_all_tables()``.
"""


def import_all_orm_models() -> None:
    """Import kernel models and every ``fbms_modules.*.orm`` module.

    Idempotent -- repeated calls are harmless.
    """
    import fbms_kernel.models  # noqa: F401
    import fbms_modules.inventory.orm  # noqa: F401
    import fbms_modules.procurement.orm  # noqa: F401
    import fbms_modules.sales.orm  # noqa: F401


def create_all_tables() -> None:
    """Register all ORM models, create every table, enable immutability."""
    from fbms_kernel.db.engine import create_tables
    from fbms_kernel.db.immutability import register_immutability_listeners

    import_all_orm_models()
    create_tables()
    register_immutability_listeners()
