import sqlite3
import threading
from typing import Optional, Tuple, Dict, List

class StorageDB:
    def __init__(self, db_path: str):
        self.conn = sqlite3.connect(db_path, check_same_thread=False)
        self.cursor = self.conn.cursor()
        self._lock = threading.Lock()
        self._init_db()

    def _init_db(self):
        with self._lock:
            # Calls table: every executed call with its outcome
            self.cursor.execute('''
                CREATE TABLE IF NOT EXISTS calls (
                    seq INTEGER PRIMARY KEY AUTOINCREMENT,
                    hash TEXT,
                    block INTEGER,
                    status TEXT,
                    data TEXT
                )
            ''')
            self.cursor.execute('CREATE INDEX IF NOT EXISTS calls_hash ON calls (hash)')
            # State table: Key-Value store for ledger state
            self.cursor.execute('''
                CREATE TABLE IF NOT EXISTS state (
                    key TEXT PRIMARY KEY,
                    value TEXT
                )
            ''')
            self.conn.commit()

    # --- Call log ---
    def save_call(self, call_hash: str, block: int, status: str, data: str):
        with self._lock:
            self.cursor.execute(
                'INSERT INTO calls (hash, block, status, data) VALUES (?, ?, ?, ?)',
                (call_hash, block, status, data)
            )
            self.conn.commit()

    def get_calls(self, call_hash: str) -> List[Tuple[int, str, str]]:
        """Returns (block, status, data) for every execution of a call hash, oldest first."""
        with self._lock:
            self.cursor.execute('SELECT block, status, data FROM calls WHERE hash = ? ORDER BY seq', (call_hash,))
            return self.cursor.fetchall()

    def count_calls(self) -> int:
        with self._lock:
            self.cursor.execute('SELECT COUNT(*) FROM calls')
            return self.cursor.fetchone()[0]

    # --- State Methods ---
    def get_state(self, key: str) -> Optional[str]:
        with self._lock:
            self.cursor.execute('SELECT value FROM state WHERE key = ?', (key,))
            row = self.cursor.fetchone()
            return row[0] if row else None

    def set_state(self, key: str, value: str):
        with self._lock:
            self.cursor.execute('INSERT OR REPLACE INTO state (key, value) VALUES (?, ?)', (key, value))
            self.conn.commit()

    def set_state_many(self, items: Dict[str, str], deleted: List[str] = ()):
        """Writes a batch of keys in one sqlite transaction."""
        with self._lock:
            self.cursor.executemany(
                'INSERT OR REPLACE INTO state (key, value) VALUES (?, ?)', list(items.items())
            )
            self.cursor.executemany('DELETE FROM state WHERE key = ?', [(k,) for k in deleted])
            self.conn.commit()

    def get_state_by_prefix(self, prefix: str) -> Dict[str, str]:
        with self._lock:
            self.cursor.execute('SELECT key, value FROM state WHERE key LIKE ?', (f"{prefix}%",))
            return {row[0]: row[1] for row in self.cursor.fetchall()}

    def close(self):
        with self._lock:
            self.conn.close()
