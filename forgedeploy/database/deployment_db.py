"""
Database operations for deployment records and their step history
"""

import sqlite3
import logging
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from forgedeploy.models import DeploymentRecord, DeploymentRequest, StepRef

# Configure SQLite to handle datetime properly for Python 3.12+
sqlite3.register_adapter(datetime, lambda dt: dt.isoformat())
sqlite3.register_converter("timestamp", lambda b: datetime.fromisoformat(b.decode()))


class DeploymentDatabase:
    """Persists one row per deployment plus an append-only step log"""

    def __init__(self, db_path: str = 'deployments.db'):
        """Initialize database connection"""
        self.db_path = db_path
        self.logger = logging.getLogger('forgedeploy')
        self._setup_database()

    def _connect(self) -> sqlite3.Connection:
        return sqlite3.connect(self.db_path, detect_types=sqlite3.PARSE_DECLTYPES | sqlite3.PARSE_COLNAMES)

    def _setup_database(self):
        """Setup SQLite database for tracking deployments"""
        with self._connect() as conn:
            conn.execute('''
                CREATE TABLE IF NOT EXISTS deployments (
                    request_id TEXT PRIMARY KEY,
                    source TEXT,
                    actor_id TEXT,
                    event_id TEXT,
                    raw_text TEXT,
                    token_name TEXT,
                    token_symbol TEXT,
                    status TEXT DEFAULT 'pending',
                    token_id TEXT,
                    failed_step TEXT,
                    last_error TEXT,
                    requested_at TIMESTAMP,
                    updated_at TIMESTAMP
                )
            ''')

            # Transitions are only ever inserted, never updated
            conn.execute('''
                CREATE TABLE IF NOT EXISTS deployment_steps (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    request_id TEXT,
                    step TEXT,
                    status TEXT,
                    tx_ref TEXT,
                    at INTEGER,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            ''')

            conn.execute('''
                CREATE INDEX IF NOT EXISTS idx_actor_requested
                ON deployments(actor_id, requested_at)
            ''')

        self.logger.debug(f"Deployment database ready at {self.db_path}")

    def save_request(self, request: DeploymentRequest, token_name: str, token_symbol: str) -> None:
        """Insert the row for a newly accepted request"""
        requested_at = datetime.fromtimestamp(request.received_at)
        with self._connect() as conn:
            conn.execute('''
                INSERT INTO deployments
                (request_id, source, actor_id, event_id, raw_text, token_name,
                 token_symbol, status, requested_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, 'pending', ?, ?)
            ''', (
                request.request_id, request.source, request.actor_id.lower(), request.event_id,
                request.raw_text, token_name, token_symbol, requested_at, datetime.now()
            ))

    def record_transition(self, record: DeploymentRecord, ref: StepRef) -> None:
        """Append a step and refresh the deployment row"""
        with self._connect() as conn:
            conn.execute('''
                INSERT INTO deployment_steps (request_id, step, status, tx_ref, at)
                VALUES (?, ?, ?, ?, ?)
            ''', (record.request_id, ref.step, ref.status.value, ref.tx_ref, ref.at))
            conn.execute('''
                UPDATE deployments
                SET status=?, token_id=?, failed_step=?, last_error=?, updated_at=?
                WHERE request_id=?
            ''', (
                record.status.value, record.token_id, record.failed_step,
                record.last_error, datetime.now(), record.request_id
            ))

    def get_deployment(self, request_id: str) -> Optional[Dict]:
        with self._connect() as conn:
            conn.row_factory = sqlite3.Row
            row = conn.execute(
                "SELECT * FROM deployments WHERE request_id = ?", (request_id,)
            ).fetchone()
            return dict(row) if row else None

    def get_steps(self, request_id: str) -> List[Dict]:
        """Step history in insertion order"""
        with self._connect() as conn:
            conn.row_factory = sqlite3.Row
            rows = conn.execute(
                "SELECT step, status, tx_ref, at FROM deployment_steps WHERE request_id = ? ORDER BY id",
                (request_id,)
            ).fetchall()
            return [dict(row) for row in rows]

    def get_actor_deployments(self, actor_id: str) -> List[Dict]:
        with self._connect() as conn:
            conn.row_factory = sqlite3.Row
            rows = conn.execute(
                "SELECT * FROM deployments WHERE actor_id = LOWER(?) ORDER BY requested_at DESC",
                (actor_id,)
            ).fetchall()
            return [dict(row) for row in rows]

    def get_deployment_stats(self) -> Dict:
        """Get deployment statistics for the last 24 hours"""
        since = datetime.now() - timedelta(hours=24)
        with self._connect() as conn:
            cursor = conn.execute('''
                SELECT
                    COUNT(*),
                    SUM(CASE WHEN status = 'liquidity_locked' THEN 1 ELSE 0 END),
                    SUM(CASE WHEN status = 'failed' THEN 1 ELSE 0 END)
                FROM deployments
                WHERE requested_at > ?
            ''', (since,))
            total, successful, failed = cursor.fetchone()

        return {
            'total_requests_24h': total or 0,
            'successful_deploys_24h': successful or 0,
            'failed_deploys_24h': failed or 0,
        }
