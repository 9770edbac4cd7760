# cardsync/models.py
"""SQLAlchemy ORM models for persisted entities.

`Listing` rows are keyed by the natural key `(source, link)`; the integer
`id` is a storage detail and `slug` is kept for display only.
"""
from sqlalchemy import Column, Integer, Text, String, TIMESTAMP, UniqueConstraint, Index
from .db import Base

class Listing(Base):
    __tablename__ = "listings"
    id = Column(Integer, primary_key=True, index=True)
    source = Column(String(50), nullable=False)
    link = Column(Text, nullable=False)
    slug = Column(Text)
    title = Column(Text, nullable=False)
    price = Column(Text)
    image_url = Column(Text)
    first_seen_at = Column(TIMESTAMP(timezone=True), nullable=False)
    last_synced_at = Column(TIMESTAMP(timezone=True), nullable=False)

    __table_args__ = (
        UniqueConstraint("source", "link", name="uq_listings_source_link"),
    )

Index("idx_listings_last_synced", Listing.last_synced_at)
