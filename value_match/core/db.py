"""
SQLite foundation for posts, value profiles and conversations.
"""

import sqlite3
from contextlib import contextmanager
from typing import Generator, Optional

from .config import DB_PATH, ensure_db_directory


@contextmanager
def get_db(db_path: Optional[str] = None) -> Generator[sqlite3.Connection, None, None]:
    """Get a SQLite database connection."""
    path = db_path or DB_PATH
    ensure_db_directory(path)
    conn = sqlite3.connect(path)
    try:
        yield conn
    finally:
        conn.close()


def init_db(db_path: Optional[str] = None):
    """Initialize the database with required tables."""
    with get_db(db_path) as conn:
        cursor = conn.cursor()

        # Posts are attributed to a permanent user or an anonymous token, never both
        cursor.execute('''
            CREATE TABLE IF NOT EXISTS posts (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id TEXT,
                temporary_token TEXT,
                content TEXT NOT NULL,
                nickname TEXT DEFAULT '',
                embedding TEXT,   -- JSON array, NULL when embedding failed
                created_at TEXT NOT NULL,
                CHECK ((user_id IS NULL) != (temporary_token IS NULL))
            )
        ''')

        cursor.execute('''
            CREATE TABLE IF NOT EXISTS value_profiles (
                user_id TEXT PRIMARY KEY,
                nickname TEXT DEFAULT '',
                content TEXT,
                embedding TEXT,   -- unit-length JSON array or NULL
                updated_at TEXT NOT NULL
            )
        ''')

        # Unordered pair stored sorted: user_a_id < user_b_id
        cursor.execute('''
            CREATE TABLE IF NOT EXISTS conversations (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_a_id TEXT NOT NULL,
                user_b_id TEXT NOT NULL,
                created_at TEXT NOT NULL,
                UNIQUE (user_a_id, user_b_id)
            )
        ''')

        # Create indexes for performance
        cursor.execute('CREATE INDEX IF NOT EXISTS idx_posts_user_id_created ON posts(user_id, created_at DESC)')
        cursor.execute('CREATE INDEX IF NOT EXISTS idx_posts_temporary_token ON posts(temporary_token)')

        conn.commit()


def health_check(db_path: Optional[str] = None) -> bool:
    """Check database health."""
    try:
        with get_db(db_path) as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT name FROM sqlite_master WHERE type='table';")
            table_names = [table[0] for table in cursor.fetchall()]

            required_tables = ['posts', 'value_profiles', 'conversations']
            return all(table in table_names for table in required_tables)
    except sqlite3.Error:
        return False
