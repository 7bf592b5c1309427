"""
Tests for the one-off re-encryption of stored credentials.
"""
import pytest
from sqlalchemy import create_engine, text
from sqlalchemy.orm import sessionmaker

from lightfriend.core.encryption import decrypt_token, encrypt_legacy, encrypt_token
from lightfriend.db.base import Base
from lightfriend.db.models.connection import ImapConnection
from lightfriend.db.models.user import User
from scripts.migrate_encryption import migrate_database


@pytest.fixture
def legacy_db(tmp_path):
    url = f"sqlite:///{tmp_path / 'legacy.db'}"
    engine = create_engine(url)
    Base.metadata.create_all(bind=engine)
    session = sessionmaker(bind=engine)()
    session.add_all([
        User(
            id=1, email="a@example.com", password_hash="x", phone_number="+358401",
            encrypted_matrix_password=encrypt_legacy("matrix-pass"),
            encrypted_matrix_access_token=encrypt_token("already-new"),
            matrix_device_id="LFDEVICE01",
        ),
        User(
            id=2, email="b@example.com", password_hash="x", phone_number="+358402",
            encrypted_matrix_password="not base64!",
        ),
        ImapConnection(
            id=1, user_id=1, method="gmail", description="a@example.com",
            encrypted_password=encrypt_legacy("app-password"), status="active",
        ),
    ])
    session.commit()
    session.close()
    engine.dispose()
    return url


def _column(url, table, column, row_id):
    engine = create_engine(url)
    try:
        with engine.connect() as conn:
            return conn.execute(text(f"SELECT {column} FROM {table} WHERE id = :id"), {"id": row_id}).scalar()
    finally:
        engine.dispose()


def test_migrates_legacy_values(legacy_db):
    results = migrate_database(legacy_db)

    assert results[("users", "encrypted_matrix_password")] == {"migrated": 1, "skipped": 0, "failed": 1}
    assert results[("users", "encrypted_matrix_access_token")] == {"migrated": 0, "skipped": 2, "failed": 0}
    assert results[("imap_connection", "encrypted_password")] == {"migrated": 1, "skipped": 0, "failed": 0}

    assert decrypt_token(_column(legacy_db, "users", "encrypted_matrix_password", 1)) == "matrix-pass"
    assert decrypt_token(_column(legacy_db, "users", "encrypted_matrix_access_token", 1)) == "already-new"
    assert decrypt_token(_column(legacy_db, "imap_connection", "encrypted_password", 1)) == "app-password"
    assert _column(legacy_db, "users", "encrypted_matrix_password", 2) == "not base64!"


def test_running_twice_is_a_no_op(legacy_db):
    migrate_database(legacy_db)
    results = migrate_database(legacy_db)
    assert results[("imap_connection", "encrypted_password")] == {"migrated": 0, "skipped": 1, "failed": 0}


def test_missing_tables_are_skipped(tmp_path):
    url = f"sqlite:///{tmp_path / 'empty.db'}"
    assert migrate_database(url) == {}


def test_device_id_stays_plaintext(legacy_db):
    results = migrate_database(legacy_db)
    assert ("users", "matrix_device_id") not in results
    assert _column(legacy_db, "users", "matrix_device_id", 1) == "LFDEVICE01"
