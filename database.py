"""
PlantScan - Detection Record Store

Handles the database engine, table creation, and the insert-only
`disease_detections` table. SQLite is used locally; point DATABASE_URL at a
postgresql:// URL (psycopg2 driver) for the cloud deployment.
"""

import logging
from functools import lru_cache

import pandas as pd
from sqlalchemy import create_engine, text
from sqlalchemy.exc import SQLAlchemyError

from config import get_settings
from errors import RecordPersistError

logger = logging.getLogger("plantscan-db")

RECENT_DETECTIONS_LIMIT = 5


@lru_cache(maxsize=None)
def get_engine(database_url=None):
    """Return a shared engine for `database_url` (defaults to the configured DATABASE_URL)."""
    url = database_url or get_settings().database_url
    return create_engine(url, pool_pre_ping=True)


def init_db(engine=None):
    """Create the detections table if it doesn't exist."""
    engine = engine or get_engine()
    with engine.begin() as conn:
        conn.execute(text('''
                          CREATE TABLE IF NOT EXISTS disease_detections
                          (
                              id              TEXT PRIMARY KEY,
                              user_id         TEXT,
                              image_url       TEXT NOT NULL,
                              disease_name    TEXT NOT NULL,
                              confidence      REAL NOT NULL,
                              severity        TEXT NOT NULL,
                              recommendations TEXT,
                              created_at      TEXT NOT NULL
                          )
                          '''))
        conn.execute(text(
            "CREATE INDEX IF NOT EXISTS idx_detections_user_created "
            "ON disease_detections (user_id, created_at)"
        ))
    logger.info("Database initialization complete.")


def insert_detection(record, engine=None):
    """Append one detection record. Raises RecordPersistError on any database error."""
    engine = engine or get_engine()
    try:
        with engine.begin() as conn:
            conn.execute(
                text('''
                     INSERT INTO disease_detections (id, user_id, image_url, disease_name, confidence,
                                                     severity, recommendations, created_at)
                     VALUES (:id, :user_id, :image_url, :disease_name, :confidence,
                             :severity, :recommendations, :created_at)
                     '''),
                {
                    "id": record.id,
                    "user_id": record.owner_id,
                    "image_url": record.image_url,
                    "disease_name": record.disease_name,
                    "confidence": float(record.confidence),
                    "severity": record.severity,
                    "recommendations": record.recommendations,
                    "created_at": record.created_at.isoformat(),
                },
            )
    except SQLAlchemyError as e:
        logger.exception("Failed to insert detection record")
        raise RecordPersistError(str(e.orig) if getattr(e, "orig", None) else str(e)) from e
    return record.id


def load_recent_detections(owner_id, limit=RECENT_DETECTIONS_LIMIT, engine=None):
    """The owner's most recent detections, newest first, as a list of dicts."""
    engine = engine or get_engine()
    with engine.connect() as conn:
        df = pd.read_sql(
            text('''
                 SELECT id, user_id, image_url, disease_name, confidence, severity, recommendations, created_at
                 FROM disease_detections
                 WHERE user_id = :user_id
                 ORDER BY created_at DESC
                 LIMIT :limit
                 '''),
            conn,
            params={"user_id": owner_id, "limit": int(limit)},
        )
    df = df.astype(object).where(pd.notna(df), None)
    return df.to_dict(orient="records")


if __name__ == "__main__":
    # Run this script directly to initialize the database
    logging.basicConfig(level=logging.INFO)
    init_db()
