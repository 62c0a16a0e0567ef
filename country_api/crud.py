from datetime import datetime
from typing import Any, Mapping, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from country_api import models

Country = models.Country

# Columns the refresh pipeline is allowed to overwrite on an existing row.
MUTABLE_FIELDS = (
    "capital",
    "region",
    "population",
    "currency_code",
    "exchange_rate",
    "estimated_gdp",
    "flag_url",
)


def _name_matches(name: str):
    return func.lower(Country.name) == func.lower(name)


def get_country(db: Session, name: str) -> Optional[models.Country]:
    return db.scalars(select(Country).where(_name_matches(name))).first()


def get_countries(db: Session, region=None, currency=None, sort=None):
    query = select(Country)
    if region:
        query = query.where(func.lower(Country.region) == func.lower(region))
    if currency:
        query = query.where(Country.currency_code == currency.upper())

    # Countries without an estimate sort last in both GDP orders.
    if sort == "gdp_desc":
        query = query.order_by(Country.estimated_gdp.is_(None), Country.estimated_gdp.desc(), Country.name.asc())
    elif sort == "gdp_asc":
        query = query.order_by(Country.estimated_gdp.is_(None), Country.estimated_gdp.asc(), Country.name.asc())
    else:
        query = query.order_by(Country.name.asc())
    return list(db.scalars(query).all())


def delete_country(db: Session, name: str) -> bool:
    country = get_country(db, name)
    if country:
        db.delete(country)
        db.commit()
        return True
    return False


def count_countries(db: Session) -> int:
    return db.scalar(select(func.count(Country.id))) or 0


def upsert_country(db: Session, fields: Mapping[str, Any], when: datetime) -> bool:
    """Insert or update the country named ``fields["name"]``. Returns True on insert.

    The write is flushed so constraint violations surface to the caller here.
    """
    existing = get_country(db, fields["name"])
    if existing is not None:
        for key in MUTABLE_FIELDS:
            setattr(existing, key, fields.get(key))
        existing.last_refreshed_at = when
        db.flush()
        return False

    db.add(
        Country(
            name=fields["name"],
            **{key: fields.get(key) for key in MUTABLE_FIELDS},
            last_refreshed_at=when,
            created_at=when,
        )
    )
    db.flush()
    return True


# -----------------------------
# App-level metadata operations
# -----------------------------
def _get_metadata_row(db: Session) -> Optional[models.RefreshMetadata]:
    return db.scalars(
        select(models.RefreshMetadata).where(models.RefreshMetadata.key_name == models.LAST_REFRESHED_AT_KEY)
    ).first()


def ensure_metadata_row(db: Session) -> models.RefreshMetadata:
    meta = _get_metadata_row(db)
    if meta is None:
        meta = models.RefreshMetadata(key_name=models.LAST_REFRESHED_AT_KEY, value=None)
        db.add(meta)
        db.flush()
    return meta


def get_last_refreshed_at(db: Session) -> Optional[datetime]:
    meta = _get_metadata_row(db)
    return meta.value if meta else None


def set_last_refreshed_at(db: Session, when: datetime) -> datetime:
    """Record ``when`` as the last refresh time. Runs inside the caller's transaction."""
    meta = ensure_metadata_row(db)
    meta.value = when
    db.flush()
    return when
