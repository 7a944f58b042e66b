import aiosqlite
from cortex.config import settings
from cortex.services.logger import logger
from cortex.services.repositories import Store
from cortex.models.errors import PersistenceError
from cortex.models.items import (
    AlertLogEntry, AlertSetting, CollectedItem, ContentRecord, Digest,
    FeedbackEvent, InterestProfileEntry, POSITIVE_FEEDBACK, ReadingStatus, SavedItem,
)
import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional

INIT_SQL = """
CREATE TABLE IF NOT EXISTS content_items (
    id TEXT PRIMARY KEY,
    channel TEXT NOT NULL,
    source TEXT NOT NULL,
    source_url TEXT NOT NULL UNIQUE,
    title TEXT NOT NULL,
    full_text TEXT,
    published_at TEXT,
    tags JSON,
    summary_ai TEXT,
    ai_tags JSON,
    score_initial REAL,
    collected_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_content_collected ON content_items(collected_at);

CREATE TABLE IF NOT EXISTS interest_profile (
    topic TEXT PRIMARY KEY,
    score REAL NOT NULL DEFAULT 0.5,
    interaction_count INTEGER NOT NULL DEFAULT 0,
    last_updated TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS interactions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    content_id TEXT NOT NULL,
    kind TEXT NOT NULL,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS alert_settings (
    trigger_type TEXT PRIMARY KEY,
    enabled INTEGER NOT NULL DEFAULT 1,
    quiet_hours_start TEXT NOT NULL DEFAULT '23:00',
    quiet_hours_end TEXT NOT NULL DEFAULT '07:00',
    last_triggered_at TEXT,
    daily_count INTEGER NOT NULL DEFAULT 0,
    daily_count_reset_at TEXT
);

CREATE TABLE IF NOT EXISTS alert_log (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    trigger_type TEXT NOT NULL,
    content_id TEXT NOT NULL,
    day TEXT NOT NULL,
    message TEXT,
    sent_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_alert_log_day ON alert_log(trigger_type, day);

CREATE TABLE IF NOT EXISTS digests (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    digest_date TEXT NOT NULL,
    mode TEXT NOT NULL,
    item_ids JSON,
    delivery_id TEXT,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS preferences (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS saved_items (
    content_id TEXT PRIMARY KEY,
    status TEXT NOT NULL,
    saved_at TEXT NOT NULL,
    reading_started_at TEXT,
    completed_at TEXT,
    archived_at TEXT
);
"""

def _ts(dt: Optional[datetime]) -> Optional[str]:
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    # Fixed width so string comparison in SQL matches time order
    return dt.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%f+00:00")

def _dt(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None

def _row_to_record(row) -> ContentRecord:
    return ContentRecord(
        id=row["id"],
        channel=row["channel"],
        source=row["source"],
        source_url=row["source_url"],
        title=row["title"],
        full_text=row["full_text"],
        published_at=_dt(row["published_at"]),
        tags=json.loads(row["tags"]) if row["tags"] else [],
        summary=row["summary_ai"],
        ai_tags=json.loads(row["ai_tags"]) if row["ai_tags"] else [],
        score_initial=row["score_initial"],
        collected_at=_dt(row["collected_at"]),
    )

class Database(Store):
    def __init__(self, db_path: Path | str | None = None):
        self.db_path = db_path or settings.DATA_DIR / "cortex.db"

    async def init(self):
        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        async with aiosqlite.connect(self.db_path) as db:
            await db.executescript(INIT_SQL)
            await db.commit()
        logger.info(f"Database initialized at {self.db_path}")

    def get_connection(self):
        return aiosqlite.connect(self.db_path)

    # --- content ---

    async def upsert_item(self, item: CollectedItem) -> bool:
        record = ContentRecord.from_collected(item)
        async with self.get_connection() as conn:
            try:
                cursor = await conn.execute(
                    """
                    INSERT OR IGNORE INTO content_items
                        (id, channel, source, source_url, title, full_text, published_at, tags, collected_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (record.id, record.channel.value, record.source, record.source_url, record.title,
                     record.full_text, _ts(record.published_at), json.dumps(record.tags, ensure_ascii=False),
                     _ts(record.collected_at))
                )
                await conn.commit()
                return cursor.rowcount > 0
            except aiosqlite.Error as e:
                raise PersistenceError(f"Failed to upsert {item.source_url}: {e}") from e

    async def count_summarized(self, source_urls: List[str]) -> int:
        if not source_urls:
            return 0
        placeholders = ",".join("?" for _ in source_urls)
        async with self.get_connection() as conn:
            cursor = await conn.execute(
                f"SELECT COUNT(*) FROM content_items WHERE summary_ai IS NOT NULL AND source_url IN ({placeholders})",
                source_urls,
            )
            row = await cursor.fetchone()
            return row[0]

    async def get_unsummarized(self, since: datetime) -> List[ContentRecord]:
        async with self.get_connection() as conn:
            conn.row_factory = aiosqlite.Row
            cursor = await conn.execute(
                """
                SELECT * FROM content_items
                WHERE summary_ai IS NULL AND collected_at >= ?
                ORDER BY channel ASC, collected_at DESC
                """,
                (_ts(since),)
            )
            rows = await cursor.fetchall()
            return [_row_to_record(r) for r in rows]

    async def update_summary(self, content_id: str, summary: str, tags: List[str], score: float) -> None:
        score = max(0.0, min(1.0, score))
        async with self.get_connection() as conn:
            try:
                await conn.execute(
                    "UPDATE content_items SET summary_ai = ?, ai_tags = ?, score_initial = ? WHERE id = ?",
                    (summary, json.dumps(tags, ensure_ascii=False), score, content_id)
                )
                await conn.commit()
            except aiosqlite.Error as e:
                raise PersistenceError(f"Failed to update summary for {content_id}: {e}") from e

    async def get_content(self, content_id: str) -> Optional[ContentRecord]:
        async with self.get_connection() as conn:
            conn.row_factory = aiosqlite.Row
            cursor = await conn.execute("SELECT * FROM content_items WHERE id = ?", (content_id,))
            row = await cursor.fetchone()
            return _row_to_record(row) if row else None

    async def get_summarized_since(self, since: datetime) -> List[ContentRecord]:
        async with self.get_connection() as conn:
            conn.row_factory = aiosqlite.Row
            cursor = await conn.execute(
                """
                SELECT * FROM content_items
                WHERE summary_ai IS NOT NULL AND collected_at >= ?
                ORDER BY channel ASC, score_initial DESC
                """,
                (_ts(since),)
            )
            return [_row_to_record(r) for r in await cursor.fetchall()]

    # --- interest profile ---

    async def get_interests(self, topics: List[str]) -> Dict[str, InterestProfileEntry]:
        if not topics:
            return {}
        placeholders = ",".join("?" for _ in topics)
        async with self.get_connection() as conn:
            conn.row_factory = aiosqlite.Row
            cursor = await conn.execute(
                f"SELECT * FROM interest_profile WHERE topic IN ({placeholders})", list(topics)
            )
            rows = await cursor.fetchall()
            return {
                r["topic"]: InterestProfileEntry(
                    topic=r["topic"], score=r["score"],
                    interaction_count=r["interaction_count"], last_updated=_dt(r["last_updated"]),
                )
                for r in rows
            }

    async def upsert_interest(self, entry: InterestProfileEntry) -> None:
        async with self.get_connection() as conn:
            try:
                await conn.execute(
                    """
                    INSERT INTO interest_profile (topic, score, interaction_count, last_updated)
                    VALUES (?, ?, ?, ?)
                    ON CONFLICT(topic) DO UPDATE SET
                        score = excluded.score,
                        interaction_count = excluded.interaction_count,
                        last_updated = excluded.last_updated
                    """,
                    (entry.topic, entry.score, entry.interaction_count, _ts(entry.last_updated))
                )
                await conn.commit()
            except aiosqlite.Error as e:
                raise PersistenceError(f"Failed to upsert topic {entry.topic}: {e}") from e

    async def top_interests(self, limit: int) -> List[InterestProfileEntry]:
        async with self.get_connection() as conn:
            conn.row_factory = aiosqlite.Row
            cursor = await conn.execute(
                "SELECT * FROM interest_profile ORDER BY score DESC, interaction_count DESC LIMIT ?", (limit,)
            )
            return [
                InterestProfileEntry(topic=r["topic"], score=r["score"],
                                     interaction_count=r["interaction_count"], last_updated=_dt(r["last_updated"]))
                for r in await cursor.fetchall()
            ]

    # --- feedback ---

    async def record_feedback(self, event: FeedbackEvent) -> None:
        async with self.get_connection() as conn:
            await conn.execute(
                "INSERT INTO interactions (content_id, kind, created_at) VALUES (?, ?, ?)",
                (event.content_id, event.kind, _ts(event.created_at))
            )
            await conn.commit()

    async def has_positive_feedback_since(self, since: datetime) -> bool:
        placeholders = ",".join("?" for _ in POSITIVE_FEEDBACK)
        async with self.get_connection() as conn:
            cursor = await conn.execute(
                f"SELECT 1 FROM interactions WHERE created_at >= ? AND kind IN ({placeholders}) LIMIT 1",
                (_ts(since), *POSITIVE_FEEDBACK)
            )
            return await cursor.fetchone() is not None

    # --- alerts ---

    async def get_alert_setting(self, trigger_type: str) -> AlertSetting:
        async with self.get_connection() as conn:
            conn.row_factory = aiosqlite.Row
            cursor = await conn.execute("SELECT * FROM alert_settings WHERE trigger_type = ?", (trigger_type,))
            row = await cursor.fetchone()
            if not row:
                return AlertSetting(trigger_type=trigger_type)
            return AlertSetting(
                trigger_type=row["trigger_type"],
                enabled=bool(row["enabled"]),
                quiet_hours_start=row["quiet_hours_start"],
                quiet_hours_end=row["quiet_hours_end"],
                last_triggered_at=_dt(row["last_triggered_at"]),
                daily_count=row["daily_count"],
                daily_count_reset_at=_dt(row["daily_count_reset_at"]),
            )

    async def save_alert_setting(self, setting: AlertSetting) -> None:
        async with self.get_connection() as conn:
            await conn.execute(
                """
                INSERT OR REPLACE INTO alert_settings
                    (trigger_type, enabled, quiet_hours_start, quiet_hours_end,
                     last_triggered_at, daily_count, daily_count_reset_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (setting.trigger_type, int(setting.enabled), setting.quiet_hours_start, setting.quiet_hours_end,
                 _ts(setting.last_triggered_at), setting.daily_count, _ts(setting.daily_count_reset_at))
            )
            await conn.commit()

    async def count_alerts(self, trigger_type: str, day: str) -> int:
        async with self.get_connection() as conn:
            cursor = await conn.execute(
                "SELECT COUNT(*) FROM alert_log WHERE trigger_type = ? AND day = ?", (trigger_type, day)
            )
            return (await cursor.fetchone())[0]

    async def alert_logged(self, trigger_type: str, content_id: str, day: str) -> bool:
        async with self.get_connection() as conn:
            cursor = await conn.execute(
                "SELECT 1 FROM alert_log WHERE trigger_type = ? AND content_id = ? AND day = ? LIMIT 1",
                (trigger_type, content_id, day)
            )
            return await cursor.fetchone() is not None

    async def append_alert_log(self, entry: AlertLogEntry) -> None:
        async with self.get_connection() as conn:
            try:
                await conn.execute(
                    "INSERT INTO alert_log (trigger_type, content_id, day, message, sent_at) VALUES (?, ?, ?, ?, ?)",
                    (entry.trigger_type, entry.content_id, entry.day, entry.message, _ts(entry.sent_at))
                )
                await conn.commit()
            except aiosqlite.Error as e:
                raise PersistenceError(f"Failed to log alert {entry.trigger_type}/{entry.content_id}: {e}") from e

    # --- digests ---

    async def save_digest(self, digest: Digest) -> int:
        async with self.get_connection() as conn:
            cursor = await conn.execute(
                "INSERT INTO digests (digest_date, mode, item_ids, delivery_id, created_at) VALUES (?, ?, ?, ?, ?)",
                (digest.digest_date, digest.mode, json.dumps(digest.item_ids), digest.delivery_id,
                 _ts(digest.created_at))
            )
            await conn.commit()
            return cursor.lastrowid

    async def recent_digests(self, limit: int) -> List[Digest]:
        async with self.get_connection() as conn:
            conn.row_factory = aiosqlite.Row
            cursor = await conn.execute("SELECT * FROM digests ORDER BY id DESC LIMIT ?", (limit,))
            return [
                Digest(id=r["id"], digest_date=r["digest_date"], mode=r["mode"],
                       item_ids=json.loads(r["item_ids"]) if r["item_ids"] else [],
                       delivery_id=r["delivery_id"], created_at=_dt(r["created_at"]))
                for r in await cursor.fetchall()
            ]

    # --- preferences ---

    async def get_preference(self, key: str, default: str | None = None) -> str | None:
        """Fetch a preference value from DB."""
        async with self.get_connection() as conn:
            cursor = await conn.execute("SELECT value FROM preferences WHERE key = ?", (key,))
            row = await cursor.fetchone()
            return row[0] if row else default

    async def set_preference(self, key: str, value: str) -> None:
        async with self.get_connection() as conn:
            await conn.execute("INSERT OR REPLACE INTO preferences (key, value) VALUES (?, ?)", (key, value))
            await conn.commit()

    # --- reading loop ---

    async def get_saved_item(self, content_id: str) -> Optional[SavedItem]:
        async with self.get_connection() as conn:
            conn.row_factory = aiosqlite.Row
            cursor = await conn.execute("SELECT * FROM saved_items WHERE content_id = ?", (content_id,))
            row = await cursor.fetchone()
            return self._row_to_saved(row) if row else None

    async def save_saved_item(self, item: SavedItem) -> None:
        async with self.get_connection() as conn:
            await conn.execute(
                """
                INSERT OR REPLACE INTO saved_items
                    (content_id, status, saved_at, reading_started_at, completed_at, archived_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (item.content_id, item.status.value, _ts(item.saved_at), _ts(item.reading_started_at),
                 _ts(item.completed_at), _ts(item.archived_at))
            )
            await conn.commit()

    async def list_saved_items(self, statuses: List[ReadingStatus]) -> List[SavedItem]:
        if not statuses:
            return []
        placeholders = ",".join("?" for _ in statuses)
        async with self.get_connection() as conn:
            conn.row_factory = aiosqlite.Row
            cursor = await conn.execute(
                f"SELECT * FROM saved_items WHERE status IN ({placeholders}) ORDER BY saved_at",
                [s.value for s in statuses]
            )
            return [self._row_to_saved(r) for r in await cursor.fetchall()]

    @staticmethod
    def _row_to_saved(row) -> SavedItem:
        return SavedItem(
            content_id=row["content_id"],
            status=ReadingStatus(row["status"]),
            saved_at=_dt(row["saved_at"]),
            reading_started_at=_dt(row["reading_started_at"]),
            completed_at=_dt(row["completed_at"]),
            archived_at=_dt(row["archived_at"]),
        )

db = Database()
