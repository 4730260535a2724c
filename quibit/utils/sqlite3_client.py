import json
import sqlite3
from pathlib import Path

from quibit.models.snapshot import IdeaCandidate
from quibit.utils.logger import logger
from quibit.utils.repository import (
    DuplicateFingerprintError,
    IdeaRepository,
    Provenance,
    build_evolution_record,
    build_record,
    record_to_prior,
)

_JSON_COLUMNS = ("mvp_scope", "tech_stack")


class SQLiteClient(IdeaRepository):
    def __init__(self, db_path):
        if db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self.conn = sqlite3.connect(db_path)
        self.conn.row_factory = sqlite3.Row
        self.cursor = self.conn.cursor()
        self.cursor.execute("""
            CREATE TABLE IF NOT EXISTS projects (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                dna_hash TEXT NOT NULL UNIQUE,
                title TEXT NOT NULL,
                summary TEXT,
                overview TEXT,
                mvp_scope TEXT,
                tech_stack TEXT,
                complexity TEXT,
                estimated_duration TEXT,
                app_type TEXT,
                goal TEXT,
                primary_domain TEXT,
                architectural_style TEXT,
                raw_json TEXT,
                provider_used TEXT,
                fallback_used INTEGER DEFAULT 0,
                provider_error TEXT,
                latency_ms INTEGER,
                retry_reason TEXT,
                similarity_score REAL,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            );
        """)
        self.cursor.execute("""
            CREATE TABLE IF NOT EXISTS evolutions (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                project_id INTEGER NOT NULL REFERENCES projects (id),
                raw_json TEXT NOT NULL,
                provider_used TEXT NOT NULL,
                fallback_used INTEGER DEFAULT 0,
                provider_error TEXT,
                latency_ms INTEGER,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            );
        """)
        self.cursor.execute(
            "CREATE INDEX IF NOT EXISTS idx_evolutions_project_id ON evolutions (project_id)"
        )
        self.conn.commit()

    def list_recent_for_similarity(self, limit):
        self.cursor.execute(
            "SELECT * FROM projects ORDER BY created_at DESC, id DESC LIMIT ?", (limit,)
        )
        return [record_to_prior(self._decode(row)) for row in self.cursor.fetchall()]

    def save(self, candidate: IdeaCandidate, fingerprint: str, provenance: Provenance) -> str:
        record = build_record(candidate, fingerprint, provenance)
        for column in _JSON_COLUMNS:
            record[column] = json.dumps(record[column])
        record["fallback_used"] = int(record["fallback_used"])
        record["created_at"] = record["created_at"].strftime("%Y-%m-%d %H:%M:%S.%f")

        columns = ", ".join(record)
        placeholders = ", ".join("?" for _ in record)
        try:
            self.cursor.execute(
                f"INSERT INTO projects ({columns}) VALUES ({placeholders})", tuple(record.values())
            )
        except sqlite3.IntegrityError as e:
            self.conn.rollback()
            if "dna_hash" in str(e):
                raise DuplicateFingerprintError(fingerprint) from e
            raise
        self.conn.commit()
        logger.debug(f"Stored project {self.cursor.lastrowid} ({fingerprint[:12]})")
        return str(self.cursor.lastrowid)

    def get(self, idea_id):
        self.cursor.execute("SELECT * FROM projects WHERE id = ?", (idea_id,))
        row = self.cursor.fetchone()
        return self._decode(row) if row else None

    def list_recent(self, limit=10):
        self.cursor.execute(
            "SELECT * FROM projects ORDER BY created_at DESC, id DESC LIMIT ?", (limit,)
        )
        return [self._decode(row) for row in self.cursor.fetchall()]

    def save_evolution(self, project_id, raw_json, provenance):
        record = build_evolution_record(project_id, raw_json, provenance)
        record["fallback_used"] = int(record["fallback_used"])
        record["created_at"] = record["created_at"].strftime("%Y-%m-%d %H:%M:%S.%f")

        columns = ", ".join(record)
        placeholders = ", ".join("?" for _ in record)
        self.cursor.execute(
            f"INSERT INTO evolutions ({columns}) VALUES ({placeholders})", tuple(record.values())
        )
        self.conn.commit()
        logger.debug(f"Stored evolution {self.cursor.lastrowid} of project {project_id}")
        return str(self.cursor.lastrowid)

    def list_evolutions(self, project_id):
        self.cursor.execute(
            "SELECT * FROM evolutions WHERE project_id = ? ORDER BY created_at ASC, id ASC", (project_id,)
        )
        evolutions = []
        for row in self.cursor.fetchall():
            record = dict(row)
            record["fallback_used"] = bool(record.get("fallback_used"))
            evolutions.append(record)
        return evolutions

    @staticmethod
    def _decode(row):
        record = dict(row)
        for column in _JSON_COLUMNS:
            record[column] = json.loads(record[column]) if record.get(column) else []
        record["fallback_used"] = bool(record.get("fallback_used"))
        return record

    def close(self):
        self.cursor.close()
        self.conn.close()
