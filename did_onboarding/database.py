"""
RYT DID Database Module
SQLite storage of minted DID profiles.
"""

import sqlite3
from contextlib import contextmanager
from typing import Optional, Dict, Any, List

from did_onboarding.config import config


def init_database():
    """Initialize the database and create tables if they don't exist."""
    config.ensure_data_dir()

    with get_db_connection() as conn:
        cursor = conn.cursor()

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS dids (
                did TEXT PRIMARY KEY,
                wallet_address TEXT NOT NULL,
                token_id TEXT,
                tx_hash TEXT,
                token_uri TEXT,
                verification_score INTEGER NOT NULL,
                is_demo BOOLEAN NOT NULL DEFAULT 0,
                full_name TEXT,
                document_type TEXT,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)
        cursor.execute("""
            CREATE INDEX IF NOT EXISTS idx_dids_wallet ON dids (wallet_address)
        """)

        conn.commit()


@contextmanager
def get_db_connection():
    """Context manager for database connections."""
    conn = sqlite3.connect(config.DB_PATH)
    conn.row_factory = sqlite3.Row
    try:
        yield conn
    finally:
        conn.close()


def save_did(
    did: str,
    wallet_address: str,
    token_id: Optional[str],
    tx_hash: Optional[str],
    token_uri: Optional[str],
    verification_score: int,
    is_demo: bool,
    full_name: Optional[str] = None,
    document_type: Optional[str] = None
) -> bool:
    """Store a minted DID. Returns False if the DID already exists."""
    with get_db_connection() as conn:
        cursor = conn.cursor()
        try:
            cursor.execute("""
                INSERT INTO dids (
                    did, wallet_address, token_id, tx_hash, token_uri,
                    verification_score, is_demo, full_name, document_type
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, (did, wallet_address, token_id, tx_hash, token_uri,
                  verification_score, is_demo, full_name, document_type))
            conn.commit()
            return True
        except sqlite3.IntegrityError:
            return False


def get_did(did: str) -> Optional[Dict[str, Any]]:
    """Retrieve a profile by DID."""
    with get_db_connection() as conn:
        cursor = conn.cursor()
        cursor.execute("""
            SELECT did, wallet_address, token_id, tx_hash, token_uri,
                   verification_score, is_demo, full_name, document_type, created_at
            FROM dids WHERE did = ?
        """, (did,))
        row = cursor.fetchone()

        if row:
            return dict(row)
        return None


def get_dids_by_wallet(wallet_address: str) -> List[Dict[str, Any]]:
    """All DIDs minted for a wallet, newest first."""
    with get_db_connection() as conn:
        cursor = conn.cursor()
        cursor.execute("""
            SELECT did, wallet_address, token_id, tx_hash, token_uri,
                   verification_score, is_demo, full_name, document_type, created_at
            FROM dids
            WHERE lower(wallet_address) = lower(?)
            ORDER BY created_at DESC, rowid DESC
        """, (wallet_address,))
        rows = cursor.fetchall()
        return [dict(row) for row in rows]
