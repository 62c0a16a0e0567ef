from datetime import datetime, timezone
from typing import Optional
from sqlalchemy import BigInteger, CheckConstraint, Integer, String, Float, DateTime, Text, TypeDecorator, func
from country_api.database import Base
from sqlalchemy.orm import Mapped, mapped_column


LAST_REFRESHED_AT_KEY = "last_refreshed_at"


class UTCDateTime(TypeDecorator):
    """Timestamps stored as UTC and always returned timezone-aware.

    SQLite and MySQL DATETIME drop the offset; naive values read back are UTC.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is not None and value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value

    def process_result_value(self, value, dialect):
        if value is not None and value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value


class Country(Base):
    __tablename__ = "countries"
    __table_args__ = (CheckConstraint("population >= 0", name="ck_countries_population_non_negative"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    name: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    capital: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    region: Mapped[Optional[str]] = mapped_column(String(100), nullable=True, index=True)
    population: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    currency_code: Mapped[Optional[str]] = mapped_column(String(10), nullable=True, index=True)
    exchange_rate: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    estimated_gdp: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    flag_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    last_refreshed_at: Mapped[Optional[datetime]] = mapped_column(
        UTCDateTime(), default=func.now()
    )
    created_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime(), default=func.now())


class RefreshMetadata(Base):
    """Key/value table holding application-level metadata; only the last refresh time is stored."""
    __tablename__ = "metadata"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    key_name: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    value: Mapped[Optional[datetime]] = mapped_column(UTCDateTime(), nullable=True)
    updated_at: Mapped[Optional[datetime]] = mapped_column(
        UTCDateTime(), default=func.now(), onupdate=func.now()
    )
