from typing import Callable, Optional

from sqlalchemy.orm import Session

from country_api import crud
from country_api.errors import NotFound
from country_api.services import image_generator
from country_api.services.refresh import RefreshResult, refresh_countries

VALID_SORTS = {"name_asc", "gdp_asc", "gdp_desc"}
DEFAULT_SORT = "name_asc"


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


def refresh(db: Session, schedule: Optional[Callable[..., None]] = None) -> RefreshResult:
    """Run a refresh pass, then hand a snapshot of the committed data to the image renderer.

    ``schedule(func, *args)`` defers the rendering (e.g. FastAPI background
    tasks); without it the image is rendered inline.
    """

    def _after_commit() -> None:
        snapshot = image_generator.build_summary_snapshot(db)
        if schedule is None:
            image_generator.regenerate_summary_image(snapshot)
        else:
            schedule(image_generator.regenerate_summary_image, snapshot)

    return refresh_countries(db, after_commit=_after_commit)


def list_countries(
    db: Session,
    region: Optional[str] = None,
    currency: Optional[str] = None,
    sort: Optional[str] = None,
) -> list:
    sort = _clean(sort)
    sort = sort.lower() if sort and sort.lower() in VALID_SORTS else DEFAULT_SORT
    return crud.get_countries(db, _clean(region), _clean(currency), sort)


def get_country_by_name(db: Session, name: str):
    country = crud.get_country(db, name.strip())
    if not country:
        raise NotFound("Country not found")
    return country


def delete_country_by_name(db: Session, name: str) -> dict:
    if not crud.delete_country(db, name.strip()):
        raise NotFound("Country not found")
    return {"message": "Country deleted successfully"}


def get_status(db: Session) -> dict:
    return {
        "total_countries": crud.count_countries(db),
        "last_refreshed_at": crud.get_last_refreshed_at(db),
    }
