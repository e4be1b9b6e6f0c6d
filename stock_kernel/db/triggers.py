"""
Module: stock_kernel.db.triggers
Responsibility: Installing and verifying the PostgreSQL triggers that make
    the append-only tables append-only at the database level (Layer 2 of 2,
    complementing the ORM listeners in db/immutability.py).
Architecture position: Kernel > DB.  MUST NOT import from models/,
    services/, selectors/ or domain/.

Invariants enforced:
    - stock_movements: no UPDATE, no DELETE.
    - sale_linkages: no UPDATE, no DELETE.
    - audit_events: no UPDATE, no DELETE.

Failure modes:
    - PostgreSQL RAISE EXCEPTION on any violation (surfaces as a DBAPI
      error through SQLAlchemy).
    - These functions are PostgreSQL-only; engine.create_tables() skips
      them on other dialects.
"""

from sqlalchemy import text
from sqlalchemy.engine import Engine

APPEND_ONLY_TABLES = ("stock_movements", "sale_linkages", "audit_events")

_FUNCTION_SQL = """
CREATE OR REPLACE FUNCTION stock_reject_append_only_change()
RETURNS trigger AS $$
BEGIN
    RAISE EXCEPTION USING MESSAGE =
        'IMMUTABILITY_VIOLATION: ' || TG_OP || ' on ' || TG_TABLE_NAME || ' is not allowed';
END;
$$ LANGUAGE plpgsql;
"""


def _trigger_names(table: str) -> tuple[str, str]:
    return (f"trg_{table}_immutability_update", f"trg_{table}_immutability_delete")


ALL_TRIGGER_NAMES = [name for table in APPEND_ONLY_TABLES for name in _trigger_names(table)]


def _install_sql() -> str:
    parts = [_FUNCTION_SQL]
    for table in APPEND_ONLY_TABLES:
        update_name, delete_name = _trigger_names(table)
        parts.append(
            f"DROP TRIGGER IF EXISTS {update_name} ON {table};\n"
            f"CREATE TRIGGER {update_name} BEFORE UPDATE ON {table}\n"
            f"    FOR EACH ROW EXECUTE FUNCTION stock_reject_append_only_change();\n"
            f"DROP TRIGGER IF EXISTS {delete_name} ON {table};\n"
            f"CREATE TRIGGER {delete_name} BEFORE DELETE ON {table}\n"
            f"    FOR EACH ROW EXECUTE FUNCTION stock_reject_append_only_change();"
        )
    return "\n".join(parts)


def _drop_sql() -> str:
    parts = []
    for table in APPEND_ONLY_TABLES:
        for name in _trigger_names(table):
            parts.append(f"DROP TRIGGER IF EXISTS {name} ON {table};")
    parts.append("DROP FUNCTION IF EXISTS stock_reject_append_only_change();")
    return "\n".join(parts)


def install_immutability_triggers(engine: Engine) -> None:
    """
    Install the append-only triggers (idempotent).

    Preconditions: tables exist; engine is PostgreSQL.
    """
    with engine.connect() as conn:
        conn.execute(text(_install_sql()))
        conn.commit()


def uninstall_immutability_triggers(engine: Engine) -> None:
    """Remove the append-only triggers.  Tests and table teardown only."""
    with engine.connect() as conn:
        conn.execute(text(_drop_sql()))
        conn.commit()


def triggers_installed(engine: Engine) -> bool:
    """True iff every trigger in ALL_TRIGGER_NAMES exists in pg_trigger."""
    with engine.connect() as conn:
        found = conn.execute(
            text("SELECT COUNT(*) FROM pg_trigger WHERE tgname = ANY(:names)"),
            {"names": ALL_TRIGGER_NAMES},
        ).scalar()
    return found == len(ALL_TRIGGER_NAMES)
