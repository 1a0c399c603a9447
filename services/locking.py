# services/locking.py
"""
Row locks that survive every supported backend.

``with_for_update()`` renders ``FOR UPDATE`` on PostgreSQL but compiles to
nothing on MS SQL Server, which takes locks through table hints instead.
Every locked read in the ledger goes through ``for_update`` so both forms
are always attached.
"""
from sqlalchemy.sql import Select

MSSQL_LOCK_HINT = "WITH (UPDLOCK, ROWLOCK)"


def for_update(stmt: Select, model) -> Select:
     """Lock the rows of ``model`` selected by ``stmt`` and refresh them from the database."""
     return (
          stmt.with_for_update()
          .with_hint(model, MSSQL_LOCK_HINT, "mssql")
          .execution_options(populate_existing=True)
     )
