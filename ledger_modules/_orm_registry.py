"""
Module ORM Registry (``ledger_modules._orm_registry``).

Responsibility
--------------
Ensure the kernel models and every ledger module's ORM models are imported
so that ``Base.metadata`` contains their table definitions before tables
are created.

Architecture position
---------------------
**Modules layer** -- utility.  Imported lazily by
``ledger_kernel.db.engine.create_tables``; MUST NOT be imported at module
level by ``ledger_kernel``.
"""


def import_all_orm_models() -> None:
    """Import kernel models and every ``ledger_modules.*.orm`` module.

    Kernel tables (parties) are registered first; document tables reference
    ``parties.id`` and payment tables reference their document table.

    This function is idempotent -- repeated calls are harmless.
    """
    import ledger_kernel.models  # noqa: F401
    # fmt: off
    import ledger_modules.payables.orm  # noqa: F401
    import ledger_modules.receivables.orm  # noqa: F401
    # fmt: on
