"""
Row lock rendering per backend.

The SQLite suite serializes writers with BEGIN IMMEDIATE, so the lock clauses
production relies on are checked by compiling the statements for each dialect.
"""
import pytest
from sqlalchemy import select
from sqlalchemy.dialects import mssql, postgresql

from models import Invoice, Payment, SequenceCounter, Tenant
from services.locking import MSSQL_LOCK_HINT, for_update
from services.numbering_service import INVOICE_SEQUENCE, NumberingService


def compiled(stmt, dialect_module):
    return str(stmt.compile(dialect=dialect_module.dialect()))


@pytest.mark.parametrize("model", [Invoice, Payment, Tenant])
class TestLockedReads:

    def test_mssql_takes_update_lock(self, model):
        sql = compiled(for_update(select(model).where(model.id == 1), model), mssql)
        assert f"{model.__tablename__} {MSSQL_LOCK_HINT}" in sql
        assert "FOR UPDATE" not in sql

    def test_postgresql_selects_for_update(self, model):
        sql = compiled(for_update(select(model).where(model.id == 1), model), postgresql)
        assert sql.rstrip().endswith("FOR UPDATE")
        assert "UPDLOCK" not in sql


class TestCounterIncrement:

    @pytest.mark.parametrize("dialect_module", [mssql, postgresql])
    def test_increment_is_computed_by_the_database(self, dialect_module):
        sql = compiled(NumberingService.increment_statement(1, INVOICE_SEQUENCE), dialect_module)
        assert sql.startswith(f"UPDATE {SequenceCounter.__tablename__} SET current_value=")
        assert "sequence_counters.current_value +" in sql


class TestScopedLoadsLock:

    def test_locked_load_uses_update_lock(self, db, staff, tenant, monkeypatch):
        from services import principal as principal_module

        statements = []
        real_for_update = principal_module.for_update

        def recording_for_update(stmt, model):
            locked = real_for_update(stmt, model)
            statements.append(locked)
            return locked

        monkeypatch.setattr(principal_module, "for_update", recording_for_update)
        principal_module.load_scoped(db, staff, Tenant, tenant.id, lock=True)

        assert len(statements) == 1
        assert MSSQL_LOCK_HINT in compiled(statements[0], mssql)
