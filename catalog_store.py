"""
catalog_store.py — SQLite persistence for the plant catalog.

This module is the only place that issues INSERT / UPDATE / DELETE statements:
- plants: root rows (unique id and slug)
- benefits, usage_methods, scientific_backings, precautions, interactions:
  child rows owned by one plant (foreign key with ON DELETE CASCADE)

Write helpers take an open connection so the query service can group several
of them in one transaction (see transaction()). Datastore errors surface as
ConstraintViolation (integrity rules) or StoreError (anything else), tagged
with the attempted operation. No retries happen here.
"""

import os
import sqlite3
from contextlib import contextmanager
from typing import Optional, List, Dict, Any, Tuple

from errors import ConstraintViolation, StoreError
from logging_config import get_logger
from models import CHILD_KINDS, Plant, child_row

logger = get_logger(__name__)


# Default path for the catalog database (can be overridden via env var)
def get_catalog_db_path() -> str:
    """Get the catalog database path from environment or default."""
    default_path = os.path.join(os.path.dirname(os.path.abspath(__file__)), 'data', 'catalog.db')
    return os.environ.get('CATALOG_DB_PATH', default_path)


# ========================================
# Database Connection Management
# ========================================

def get_catalog_db() -> sqlite3.Connection:
    """
    Get a connection to the catalog database.

    Creates the database directory and file if they don't exist.
    Uses WAL mode for concurrent read performance and enforces foreign keys,
    which SQLite leaves off by default.
    """
    db_path = get_catalog_db_path()
    os.makedirs(os.path.dirname(db_path) or '.', exist_ok=True)

    conn = sqlite3.connect(db_path)
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA foreign_keys=ON")
    conn.row_factory = sqlite3.Row
    return conn


@contextmanager
def transaction():
    """
    Yield a connection whose statements commit together.

    Any exception raised inside the block rolls every statement back and is
    re-raised unchanged.
    """
    conn = get_catalog_db()
    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


@contextmanager
def reading():
    """Yield a short-lived connection for read-only work."""
    conn = get_catalog_db()
    try:
        yield conn
    finally:
        conn.close()


def _execute(conn: sqlite3.Connection, operation: str, sql: str, params=()) -> sqlite3.Cursor:
    """Run one statement, translating sqlite3 errors into catalog errors."""
    try:
        return conn.execute(sql, params)
    except sqlite3.IntegrityError as e:
        raise ConstraintViolation(f"{operation}: {e}") from e
    except sqlite3.Error as e:
        logger.error("Store operation %s failed: %s", operation, e)
        raise StoreError(operation, e) from e


def init_catalog_db():
    """
    Initialize the catalog database schema.

    Creates all tables and indexes if they don't exist.
    This function is idempotent - safe to call multiple times.
    """
    conn = get_catalog_db()
    cursor = conn.cursor()

    # Table: plants
    # - rowid keeps insertion order for listings
    cursor.execute("""
        CREATE TABLE IF NOT EXISTS plants (
            id TEXT PRIMARY KEY,
            slug TEXT NOT NULL UNIQUE,
            common_name TEXT NOT NULL CHECK (length(trim(common_name)) > 0),
            scientific_name TEXT,
            description TEXT,
            image_url TEXT,
            evidence_level TEXT NOT NULL DEFAULT 'moderada',
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
    """)

    # Table: benefits
    # - category: ailment label used by the search filters (e.g. "Digestivo")
    cursor.execute("""
        CREATE TABLE IF NOT EXISTS benefits (
            id TEXT PRIMARY KEY,
            plant_id TEXT NOT NULL REFERENCES plants(id) ON DELETE CASCADE,
            description TEXT NOT NULL,
            category TEXT
        )
    """)

    # Table: usage_methods
    # - category: plant part used (e.g. "Hojas", "Corteza")
    cursor.execute("""
        CREATE TABLE IF NOT EXISTS usage_methods (
            id TEXT PRIMARY KEY,
            plant_id TEXT NOT NULL REFERENCES plants(id) ON DELETE CASCADE,
            description TEXT NOT NULL,
            category TEXT
        )
    """)

    # Table: scientific_backings
    cursor.execute("""
        CREATE TABLE IF NOT EXISTS scientific_backings (
            id TEXT PRIMARY KEY,
            plant_id TEXT NOT NULL REFERENCES plants(id) ON DELETE CASCADE,
            finding TEXT NOT NULL,
            language TEXT,
            year INTEGER,
            source_url TEXT
        )
    """)

    # Table: precautions
    cursor.execute("""
        CREATE TABLE IF NOT EXISTS precautions (
            id TEXT PRIMARY KEY,
            plant_id TEXT NOT NULL REFERENCES plants(id) ON DELETE CASCADE,
            description TEXT NOT NULL
        )
    """)

    # Table: interactions
    # - severity: alta / moderada / baja
    cursor.execute("""
        CREATE TABLE IF NOT EXISTS interactions (
            id TEXT PRIMARY KEY,
            plant_id TEXT NOT NULL REFERENCES plants(id) ON DELETE CASCADE,
            drug_name TEXT NOT NULL,
            mechanism TEXT,
            recommendation TEXT NOT NULL,
            severity TEXT NOT NULL DEFAULT 'moderada'
        )
    """)

    for child_cls, _ in CHILD_KINDS.values():
        table = child_cls.table
        cursor.execute(f"""
            CREATE INDEX IF NOT EXISTS idx_{table}_plant_id
            ON {table}(plant_id)
        """)

    conn.commit()
    conn.close()

    # Run migrations for existing databases
    _migrate_catalog_schema()


def _migrate_catalog_schema():
    """
    Migrate databases created before the category and evidence columns.

    Adds:
    - category to benefits and usage_methods
    - evidence_level to plants

    This function is idempotent - safe to call multiple times.
    """
    conn = get_catalog_db()
    cursor = conn.cursor()

    try:
        for table in ('benefits', 'usage_methods'):
            columns = [i[1] for i in cursor.execute(f"PRAGMA table_info({table})").fetchall()]
            if 'category' not in columns:
                cursor.execute(f"ALTER TABLE {table} ADD COLUMN category TEXT")
                logger.info("Added category column to %s", table)

        plant_columns = [i[1] for i in cursor.execute("PRAGMA table_info(plants)").fetchall()]
        if 'evidence_level' not in plant_columns:
            cursor.execute(
                "ALTER TABLE plants ADD COLUMN evidence_level TEXT NOT NULL DEFAULT 'moderada'"
            )
            logger.info("Added evidence_level column to plants")

        conn.commit()

    except sqlite3.Error as e:
        logger.warning("Catalog database migration failed: %s", e)
        conn.rollback()
    finally:
        conn.close()


def check_catalog_db_health() -> Tuple[bool, str]:
    """
    Check if the catalog database is healthy and accessible.

    Returns:
        Tuple of (is_healthy, message)
    """
    try:
        with reading() as conn:
            count = count_plants(conn)
        return True, f"Catalog database OK ({count} plants)"
    except StoreError as e:
        return False, f"Database error: {e.cause}"
    except sqlite3.Error as e:
        return False, f"Database error: {str(e)}"


# ========================================
# Writes
# ========================================

def insert_plant(conn: sqlite3.Connection, plant: Plant) -> None:
    """Insert one plant row. Duplicate id or slug raises ConstraintViolation."""
    row = plant.row()
    columns = ', '.join(row)
    placeholders = ', '.join('?' for _ in row)
    _execute(
        conn, 'insert_plant',
        f"INSERT INTO plants ({columns}) VALUES ({placeholders})",
        tuple(row.values())
    )


def insert_child(conn: sqlite3.Connection, kind: str, record) -> None:
    """
    Insert one child row of the given kind.

    The referenced plant must exist; otherwise the foreign key rejects the
    row and ConstraintViolation is raised.
    """
    if kind not in CHILD_KINDS:
        raise ValueError(f"Unknown child kind: {kind}")

    row = child_row(record)
    columns = ', '.join(row)
    placeholders = ', '.join('?' for _ in row)
    _execute(
        conn, f'insert_child[{kind}]',
        f"INSERT INTO {record.table} ({columns}) VALUES ({placeholders})",
        tuple(row.values())
    )


def update_plant(conn: sqlite3.Connection, plant_id: str, fields: Dict[str, Any]) -> int:
    """
    Update the named scalar fields of one plant.

    Returns:
        Number of rows affected (0 when plant_id is absent; callers decide
        whether that is an error).
    """
    updates = []
    params = []

    for column, value in fields.items():
        if column == 'id' or column not in Plant.columns:
            raise ValueError(f"Column not updatable: {column}")
        updates.append(f"{column} = ?")
        params.append(value)

    if not updates:
        return 0

    updates.append("updated_at = CURRENT_TIMESTAMP")
    params.append(plant_id)

    cursor = _execute(
        conn, 'update_plant',
        f"UPDATE plants SET {', '.join(updates)} WHERE id = ?",
        params
    )
    return cursor.rowcount


def delete_children_of_kind(conn: sqlite3.Connection, kind: str, plant_id: str) -> int:
    """Delete every child row of one kind for a plant. Returns the count."""
    child_cls, _ = CHILD_KINDS[kind]
    cursor = _execute(
        conn, f'delete_children[{kind}]',
        f"DELETE FROM {child_cls.table} WHERE plant_id = ?",
        (plant_id,)
    )
    return cursor.rowcount


def delete_plant(conn: sqlite3.Connection, plant_id: str) -> int:
    """
    Delete a plant and all of its children.

    Children are removed explicitly before the plant row so the result does
    not depend on the connection having foreign keys enabled; the schema's
    ON DELETE CASCADE covers every other path.

    Returns:
        Number of plant rows deleted (0 or 1).
    """
    for kind in CHILD_KINDS:
        delete_children_of_kind(conn, kind, plant_id)

    cursor = _execute(conn, 'delete_plant', "DELETE FROM plants WHERE id = ?", (plant_id,))
    return cursor.rowcount


def delete_all_plants(conn: sqlite3.Connection) -> int:
    """Empty the catalog. Used by the replace mode of the JSON import."""
    for child_cls, _ in CHILD_KINDS.values():
        _execute(conn, 'delete_all_plants', f"DELETE FROM {child_cls.table}")
    cursor = _execute(conn, 'delete_all_plants', "DELETE FROM plants")
    return cursor.rowcount


# ========================================
# Reads
# ========================================

# Plant columns plus a flag telling whether any drug interaction is recorded
_PLANT_SELECT = """
    SELECT plants.*,
           EXISTS (SELECT 1 FROM interactions WHERE interactions.plant_id = plants.id)
               AS has_interactions
    FROM plants
"""


def _child_dict(kind: str, row: sqlite3.Row) -> Dict[str, Any]:
    child_cls, _ = CHILD_KINDS[kind]
    return {col: row[col] for col in child_cls.columns}


def _plant_dict(row: sqlite3.Row) -> Dict[str, Any]:
    plant = {col: row[col] for col in Plant.columns}
    plant['created_at'] = row['created_at']
    plant['updated_at'] = row['updated_at']
    plant['has_interactions'] = bool(row['has_interactions'])
    return plant


def list_children(conn: sqlite3.Connection, kind: str, plant_id: str) -> List[Dict[str, Any]]:
    """Child rows of one kind for a plant, in insertion order."""
    child_cls, _ = CHILD_KINDS[kind]
    rows = _execute(
        conn, f'list_children[{kind}]',
        f"SELECT * FROM {child_cls.table} WHERE plant_id = ? ORDER BY rowid",
        (plant_id,)
    ).fetchall()
    return [_child_dict(kind, r) for r in rows]


def _attach_children(conn: sqlite3.Connection, plants: List[Dict[str, Any]]) -> None:
    """Merge every child kind into the plant dicts, grouped by plant_id."""
    by_id = {p['id']: p for p in plants}
    for kind, (child_cls, key) in CHILD_KINDS.items():
        for p in plants:
            p[key] = []
        rows = _execute(
            conn, f'list_children[{kind}]',
            f"SELECT * FROM {child_cls.table} ORDER BY rowid"
        ).fetchall()
        for r in rows:
            parent = by_id.get(r['plant_id'])
            if parent is not None:
                parent[key].append(_child_dict(kind, r))


def list_plants(conn: sqlite3.Connection, with_children: bool = True) -> List[Dict[str, Any]]:
    """
    Get all plants in insertion order.

    Args:
        with_children: merge every child collection (benefits, usage_methods,
                       scientific_backings, precautions, interactions)
                       into each plant dict

    Returns:
        List of plant dicts
    """
    rows = _execute(conn, 'list_plants', f"{_PLANT_SELECT} ORDER BY rowid").fetchall()
    plants = [_plant_dict(r) for r in rows]
    if with_children:
        _attach_children(conn, plants)
    return plants


def _find_plant(conn, operation: str, column: str, value: str, with_children: bool) -> Optional[Dict[str, Any]]:
    row = _execute(
        conn, operation, f"{_PLANT_SELECT} WHERE {column} = ?", (value,)
    ).fetchone()

    if not row:
        return None

    plant = _plant_dict(row)
    if with_children:
        for kind, (_, key) in CHILD_KINDS.items():
            plant[key] = list_children(conn, kind, plant['id'])
    return plant


def find_plant_by_slug(conn: sqlite3.Connection, slug: str, with_children: bool = True) -> Optional[Dict[str, Any]]:
    """Get a plant by slug, or None if not found."""
    return _find_plant(conn, 'find_plant_by_slug', 'slug', slug, with_children)


def find_plant_by_id(conn: sqlite3.Connection, plant_id: str, with_children: bool = True) -> Optional[Dict[str, Any]]:
    """Get a plant by id, or None if not found."""
    return _find_plant(conn, 'find_plant_by_id', 'id', plant_id, with_children)


def count_plants(conn: sqlite3.Connection) -> int:
    """Get the total number of plants in the database."""
    return _execute(conn, 'count_plants', "SELECT COUNT(*) FROM plants").fetchone()[0]


def count_children(conn: sqlite3.Connection, plant_id: str) -> Dict[str, int]:
    """Child row count per kind for a plant id (the plant itself may be gone)."""
    counts = {}
    for kind, (child_cls, _) in CHILD_KINDS.items():
        counts[kind] = _execute(
            conn, 'count_children',
            f"SELECT COUNT(*) FROM {child_cls.table} WHERE plant_id = ?",
            (plant_id,)
        ).fetchone()[0]
    return counts
