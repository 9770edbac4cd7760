# cardsync/crud.py
"""Persistence helpers for `Listing` rows.

`upsert_listings` is the idempotent write used by the sync pipeline;
`ListingRepository` wraps it with batch dedup, timestamps and error mapping.
The read helpers back the HTTP surface only.
"""
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from typing import Any, Dict, List, Optional, Sequence
from .errors import PersistenceError
from .models import Listing
from .schemas import ListingEntity, dedupe_by_identity
from .utils import logger, utc_now

_DIALECT_INSERTS = {
    "postgresql": pg_insert,
    "sqlite": sqlite_insert,
}

def _dialect_insert(db: Session):
    name = db.get_bind().dialect.name
    try:
        return _DIALECT_INSERTS[name]
    except KeyError:
        raise PersistenceError(f"upsert is not supported on dialect {name!r}") from None

def upsert_listings(db: Session, rows: List[Dict[str, Any]]):
    """Insert or update rows keyed by (source, link) in one statement.

    Rows must not repeat a key. `first_seen_at` is only written on insert.
    """
    table = Listing.__table__
    stmt = _dialect_insert(db)(table)
    # copy all updatable columns from EXCLUDED except the insert-only timestamp
    excluded = {c.name: stmt.excluded[c.name] for c in table.columns if c.name not in ("id", "first_seen_at")}
    stmt = stmt.on_conflict_do_update(index_elements=["source", "link"], set_=excluded)
    db.execute(stmt, rows)
    db.commit()

def get_listing(db: Session, source: str, link: str):
    return db.query(Listing).filter(Listing.source == source, Listing.link == link).first()

def list_listings(db: Session, skip: int = 0, limit: int = 50, source: Optional[str] = None):
    q = db.query(Listing)
    if source:
        q = q.filter(Listing.source == source)
    total = q.count()
    items = q.order_by(Listing.last_synced_at.desc(), Listing.id).offset(skip).limit(limit).all()
    return {"total": total, "items": items}

def count_listings(db: Session) -> int:
    return db.query(Listing).count()


class ListingRepository:
    def __init__(self, session_factory, clock=utc_now):
        self._session_factory = session_factory
        self._clock = clock

    def save(self, entities: Sequence[ListingEntity]) -> int:
        """Upsert entities by natural key; returns the number of keys written."""
        if not entities:
            return 0
        unique = dedupe_by_identity(entities)
        if len(unique) < len(entities):
            logger.info("Collapsed %d duplicate listings in batch", len(entities) - len(unique))
        now = self._clock()
        rows = [e.to_row(now) for e in unique]
        db = self._session_factory()
        try:
            upsert_listings(db, rows)
        except SQLAlchemyError as e:
            db.rollback()
            raise PersistenceError(f"failed to save {len(rows)} listings: {e}") from e
        finally:
            db.close()
        logger.info("Upserted %d listings", len(rows))
        return len(rows)
