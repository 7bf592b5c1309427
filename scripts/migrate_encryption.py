"""
Re-encrypt stored credentials from the legacy CBC cipher to AES-GCM.
Run: python -m scripts.migrate_encryption
"""
import logging
from typing import Dict, Tuple

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.engine import Connection

from lightfriend.core.encryption import EncryptionError, decrypt_legacy, decrypt_token, encrypt_token

logger = logging.getLogger(__name__)

DEFAULT_DATABASE_URL = "sqlite:///database.db"

ENCRYPTED_COLUMNS = (
    ("users", "encrypted_matrix_password"),
    ("users", "encrypted_matrix_access_token"),
    ("google_calendar", "encrypted_access_token"),
    ("google_calendar", "encrypted_refresh_token"),
    ("imap_connection", "encrypted_password"),
)


def _already_migrated(value: str) -> bool:
    try:
        decrypt_token(value)
    except EncryptionError:
        return False
    return True


def migrate_column(conn: Connection, table: str, column: str) -> Dict[str, int]:
    """
    Re-encrypt every non-empty value in one column.

    Returns:
        Counts of migrated, skipped (empty or already AES-GCM) and failed rows
    """
    counts = {"migrated": 0, "skipped": 0, "failed": 0}
    rows = conn.execute(text(f"SELECT id, {column} FROM {table}")).fetchall()
    for row_id, value in rows:
        if not value:
            counts["skipped"] += 1
            continue
        if _already_migrated(value):
            counts["skipped"] += 1
            continue
        try:
            plaintext = decrypt_legacy(value)
        except EncryptionError as e:
            logger.error(f"{table}.{column} id={row_id}: {e}")
            counts["failed"] += 1
            continue
        conn.execute(
            text(f"UPDATE {table} SET {column} = :value WHERE id = :id"),
            {"value": encrypt_token(plaintext), "id": row_id},
        )
        counts["migrated"] += 1
    return counts


def migrate_database(database_url: str = DEFAULT_DATABASE_URL) -> Dict[Tuple[str, str], Dict[str, int]]:
    """Migrate every encrypted column in one transaction."""
    engine = create_engine(database_url)
    results = {}
    try:
        tables = set(inspect(engine).get_table_names())
        with engine.begin() as conn:
            for table, column in ENCRYPTED_COLUMNS:
                if table not in tables:
                    logger.warning(f"Table {table} not found, skipping")
                    continue
                counts = migrate_column(conn, table, column)
                results[(table, column)] = counts
                logger.info(
                    f"{table}.{column}: migrated={counts['migrated']}, "
                    f"skipped={counts['skipped']}, failed={counts['failed']}"
                )
    finally:
        engine.dispose()
    return results


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s")
    migrate_database()
