import json
import sqlite3
import time
from datetime import datetime
from pathlib import Path
from typing import Optional, Dict, Any, List

COLUMNS = (
    "id,name,email,phone,terms,source_image,target_image,swapped_image,created_at_ms,updated_at_ms"
)
IMAGE_COLUMNS = ("source_image", "target_image", "swapped_image")

class SubmissionStore:
    def __init__(self, db_path: str):
        self.db_path = db_path
        self._init()

    def _conn(self):
        return sqlite3.connect(self.db_path, check_same_thread=False)

    def _init(self):
        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        with self._conn() as c:
            c.execute("""
            CREATE TABLE IF NOT EXISTS submissions (
              id TEXT PRIMARY KEY,
              name TEXT NOT NULL,
              email TEXT NOT NULL,
              phone TEXT NOT NULL,
              terms INTEGER NOT NULL,
              source_image TEXT,
              target_image TEXT,
              swapped_image TEXT,
              created_at_ms INTEGER NOT NULL,
              updated_at_ms INTEGER NOT NULL
            )
            """)
            c.execute("CREATE INDEX IF NOT EXISTS idx_submissions_created ON submissions(created_at_ms)")
            c.commit()

    @staticmethod
    def _row(row) -> Dict[str, Any]:
        record = dict(zip(COLUMNS.split(","), row))
        record["terms"] = bool(record["terms"])
        for key in IMAGE_COLUMNS:
            record[key] = json.loads(record[key]) if record[key] else None
        return record

    def create(
        self,
        submission_id: str,
        user: Dict[str, Any],
        source_image: Dict[str, Any],
        target_image: Dict[str, Any],
        swapped_image: Dict[str, Any],
    ) -> Dict[str, Any]:
        now = int(time.time() * 1000)
        values = (
            submission_id,
            user["name"],
            user["email"],
            user["phone"],
            int(bool(user.get("terms"))),
            json.dumps(source_image),
            json.dumps(target_image),
            json.dumps(swapped_image),
            now,
            now,
        )
        with self._conn() as c:
            c.execute(f"INSERT INTO submissions({COLUMNS}) VALUES(?,?,?,?,?,?,?,?,?,?)", values)
            c.commit()
        return self._row(values)

    def list(self, limit: int = 50, skip: int = 0) -> List[Dict[str, Any]]:
        with self._conn() as c:
            cur = c.execute(
                f"SELECT {COLUMNS} FROM submissions ORDER BY created_at_ms DESC, rowid DESC LIMIT ? OFFSET ?",
                (limit, skip),
            )
            return [self._row(r) for r in cur.fetchall()]

    def get(self, submission_id: str) -> Optional[Dict[str, Any]]:
        with self._conn() as c:
            cur = c.execute(f"SELECT {COLUMNS} FROM submissions WHERE id=?", (submission_id,))
            row = cur.fetchone()
            if not row:
                return None
            return self._row(row)

    def delete(self, submission_id: str) -> bool:
        with self._conn() as c:
            cur = c.execute("DELETE FROM submissions WHERE id=?", (submission_id,))
            c.commit()
            return cur.rowcount > 0

    def statistics(self) -> Dict[str, Any]:
        # "today" is local midnight onward
        today_start = datetime.now().replace(hour=0, minute=0, second=0, microsecond=0)
        today_ms = int(today_start.timestamp() * 1000)
        with self._conn() as c:
            total = c.execute("SELECT COUNT(*) FROM submissions").fetchone()[0]
            today = c.execute(
                "SELECT COUNT(*) FROM submissions WHERE created_at_ms >= ?", (today_ms,)
            ).fetchone()[0]
        return {"total": total, "today": today, "last_updated": datetime.now().astimezone().isoformat()}
