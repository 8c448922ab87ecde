"""
Persistent research cache.

One row per (manufacturer, identifier) holding the latest research outcome.
Rows are never deleted by the pipeline; entries older than the validity
window are still returned but flagged as expired so the caller can decide
whether degraded data is acceptable.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import Any, Callable, Iterable, Optional

from sqlalchemy import (
    JSON,
    Date,
    DateTime,
    Engine,
    Integer,
    String,
    Text,
    UniqueConstraint,
    create_engine,
    delete,
    func,
    select,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, sessionmaker
from sqlalchemy.pool import StaticPool

from lifecycle_research.models.schemas import (
    BulkCacheStatus,
    CacheEntry,
    LifecycleDates,
    Product,
)
from lifecycle_research.utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_VALIDITY = timedelta(days=365)
DEFAULT_CONFIDENCE_BOOST = 2
DEFAULT_CONFIDENCE = 90
MAX_CONFIDENCE = 100

JSONType = JSON().with_variant(JSONB(), "postgresql")

CacheKey = tuple[str, str]


def utcnow() -> datetime:
    """Naive UTC timestamp, as stored in the cache table."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def cache_key(manufacturer: str, identifier: str) -> CacheKey:
    """Case-insensitive key for a product."""
    return ((manufacturer or "").strip().lower(), (identifier or "").strip().upper())


# =============================================================================
# ORM Model
# =============================================================================

class Base(DeclarativeBase):
    """Base class for cache models."""

    pass


class ResearchCacheRecord(Base):
    """Latest research result for one product."""

    __tablename__ = "ai_research_cache"
    __table_args__ = (
        UniqueConstraint("manufacturer_key", "part_number_key", name="uq_research_cache_product"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    manufacturer: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    part_number: Mapped[str] = mapped_column(String(255), nullable=False)
    manufacturer_key: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    part_number_key: Mapped[str] = mapped_column(String(255), nullable=False)

    date_introduced: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    end_of_sale_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    end_of_sw_maintenance_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    end_of_sw_vulnerability_maintenance_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    last_day_of_support_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    research_source: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    research_date: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    data_sources: Mapped[Optional[dict]] = mapped_column(JSONType, nullable=True)
    confidence_score: Mapped[int] = mapped_column(Integer, nullable=False, default=DEFAULT_CONFIDENCE)
    estimation_metadata: Mapped[Optional[dict]] = mapped_column(JSONType, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    def to_dates(self) -> LifecycleDates:
        return LifecycleDates(
            introduced=self.date_introduced,
            end_of_sale=self.end_of_sale_date,
            end_of_sw_maintenance=self.end_of_sw_maintenance_date,
            end_of_sw_vulnerability_support=self.end_of_sw_vulnerability_maintenance_date,
            last_day_of_support=self.last_day_of_support_date,
        )

    def apply_dates(self, dates: LifecycleDates) -> None:
        self.date_introduced = dates.introduced
        self.end_of_sale_date = dates.end_of_sale
        self.end_of_sw_maintenance_date = dates.end_of_sw_maintenance
        self.end_of_sw_vulnerability_maintenance_date = dates.end_of_sw_vulnerability_support
        self.last_day_of_support_date = dates.last_day_of_support


def create_cache_engine(database_url: str, echo: bool = False) -> Engine:
    """Engine for the cache database; in-memory SQLite shares one connection."""
    if database_url in ("sqlite://", "sqlite:///:memory:"):
        return create_engine(
            database_url,
            echo=echo,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    return create_engine(database_url, echo=echo, pool_pre_ping=True)


# =============================================================================
# Cache Service
# =============================================================================

class ResearchCache:
    """
    Research Cache backed by a relational table.

    Example:
        >>> cache = ResearchCache("sqlite:///:memory:")
        >>> cache.upsert("Cisco", "WS-C3850-48P", dates, 92)
        >>> entry = cache.lookup("cisco", " ws-c3850-48p ")
    """

    def __init__(
        self,
        database_url: str | Engine = "sqlite:///:memory:",
        validity: timedelta = DEFAULT_VALIDITY,
        confidence_boost: int = DEFAULT_CONFIDENCE_BOOST,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.engine = database_url if isinstance(database_url, Engine) else create_cache_engine(database_url)
        self.validity = validity
        self.confidence_boost = confidence_boost
        self._now = clock or utcnow
        self._session_factory = sessionmaker(self.engine, expire_on_commit=False)
        Base.metadata.create_all(self.engine)

    @classmethod
    def from_settings(cls, settings: Any) -> "ResearchCache":
        return cls(
            settings.database_url,
            validity=timedelta(days=settings.cache_validity_days),
            confidence_boost=settings.cache_confidence_boost,
        )

    def _session(self) -> Session:
        return self._session_factory()

    def _find(self, session: Session, key: CacheKey) -> Optional[ResearchCacheRecord]:
        stmt = select(ResearchCacheRecord).where(
            ResearchCacheRecord.manufacturer_key == key[0],
            ResearchCacheRecord.part_number_key == key[1],
        )
        return session.scalars(stmt).first()

    def _is_expired(self, research_date: datetime, now: datetime) -> bool:
        return now - research_date > self.validity

    # =========================================================================
    # Public API
    # =========================================================================

    def lookup(self, manufacturer: str, identifier: str) -> Optional[CacheEntry]:
        """
        Find the cached research for a product.

        Returns:
            CacheEntry or None. Fresh entries get a confidence boost and
            ``from_cache``; stale ones are returned with ``is_expired``.
        """
        key = cache_key(manufacturer, identifier)
        if not key[1]:
            return None
        with self._session() as session:
            record = self._find(session, key)
        if record is None:
            logger.debug("Cache miss", manufacturer=manufacturer, identifier=identifier)
            return None

        now = self._now()
        age_days = max(0, (now - record.research_date).days)
        expired = self._is_expired(record.research_date, now)
        confidence = record.confidence_score
        if not expired:
            confidence = min(MAX_CONFIDENCE, confidence + self.confidence_boost)

        logger.info(
            "Cache hit",
            manufacturer=manufacturer,
            identifier=identifier,
            expired=expired,
            age_days=age_days,
        )
        return CacheEntry(
            manufacturer=record.manufacturer,
            identifier=record.part_number,
            dates=record.to_dates(),
            research_timestamp=record.research_date,
            confidence_score=confidence,
            research_source=record.research_source,
            data_sources=record.data_sources or {},
            estimation_metadata=record.estimation_metadata,
            is_expired=expired,
            from_cache=not expired,
            cache_age_days=age_days,
        )

    def upsert(
        self,
        manufacturer: str,
        identifier: str,
        dates: LifecycleDates,
        confidence: int,
        *,
        research_source: Optional[str] = None,
        data_sources: Optional[dict[str, Any]] = None,
        estimation_metadata: Optional[dict[str, Any]] = None,
    ) -> None:
        """Insert or overwrite the row for a product; latest research wins."""
        key = cache_key(manufacturer, identifier)
        if not key[1]:
            raise ValueError("identifier is required for caching")
        now = self._now()
        with self._session() as session, session.begin():
            record = self._find(session, key)
            if record is None:
                record = ResearchCacheRecord(
                    manufacturer_key=key[0],
                    part_number_key=key[1],
                    created_at=now,
                )
                session.add(record)
            record.manufacturer = (manufacturer or "").strip()
            record.part_number = identifier.strip()
            record.apply_dates(dates)
            record.confidence_score = max(0, min(MAX_CONFIDENCE, int(confidence)))
            record.research_source = research_source or "Web Research"
            record.data_sources = data_sources
            record.estimation_metadata = estimation_metadata
            record.research_date = now
            record.updated_at = now

        logger.info(
            "Cache updated",
            manufacturer=manufacturer,
            identifier=identifier,
            confidence=confidence,
        )

    def bulk_lookup(self, products: Iterable[Product]) -> dict[CacheKey, BulkCacheStatus]:
        """Cached/fresh status for many products in one query."""
        keys = {cache_key(p.manufacturer, p.identifier) for p in products}
        status: dict[CacheKey, BulkCacheStatus] = {k: BulkCacheStatus() for k in keys}
        if not keys:
            return status

        part_keys = {k[1] for k in keys}
        now = self._now()
        with self._session() as session:
            stmt = select(ResearchCacheRecord).where(ResearchCacheRecord.part_number_key.in_(part_keys))
            for record in session.scalars(stmt):
                key = (record.manufacturer_key, record.part_number_key)
                if key not in status:
                    continue
                status[key] = BulkCacheStatus(
                    cached=True,
                    fresh=not self._is_expired(record.research_date, now),
                    research_timestamp=record.research_date,
                    confidence=record.confidence_score,
                )
        return status

    def stats(self) -> dict[str, Any]:
        """Totals, freshness split and age range of the cache."""
        cutoff = self._now() - self.validity
        with self._session() as session:
            total = session.scalar(select(func.count(ResearchCacheRecord.id))) or 0
            fresh = session.scalar(
                select(func.count(ResearchCacheRecord.id)).where(ResearchCacheRecord.research_date >= cutoff)
            ) or 0
            manufacturers = session.scalar(
                select(func.count(func.distinct(ResearchCacheRecord.manufacturer_key)))
            ) or 0
            avg_confidence = session.scalar(select(func.avg(ResearchCacheRecord.confidence_score)))
            oldest = session.scalar(select(func.min(ResearchCacheRecord.research_date)))
            newest = session.scalar(select(func.max(ResearchCacheRecord.research_date)))
        return {
            "total_entries": total,
            "fresh_entries": fresh,
            "stale_entries": total - fresh,
            "unique_manufacturers": manufacturers,
            "avg_confidence": round(float(avg_confidence), 1) if avg_confidence is not None else None,
            "oldest_entry": oldest,
            "newest_entry": newest,
        }

    def purge_stale(self) -> int:
        """Delete entries past the validity window. Operator action only."""
        cutoff = self._now() - self.validity
        with self._session() as session, session.begin():
            result = session.execute(
                delete(ResearchCacheRecord).where(ResearchCacheRecord.research_date < cutoff)
            )
            removed = result.rowcount or 0
        logger.info("Stale cache entries purged", removed=removed)
        return removed

    def close(self) -> None:
        self.engine.dispose()
