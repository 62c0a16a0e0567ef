from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Path, Query
from fastapi.responses import FileResponse
from sqlalchemy.orm import Session

from country_api import schemas
from country_api.database import get_db
from country_api.errors import NotFound
from country_api.services import country_service
from country_api.services.image_generator import summary_image_path

router = APIRouter()


@router.post(
    "/refresh",
    response_model=schemas.RefreshOut,
    summary="Refresh country, currency, and exchange data",
    description=(
        "Fetches the latest data from external providers and upserts it into the local database. "
        "The summary image for the top 5 GDP countries is regenerated in the background."
    ),
)
def refresh_countries(background_tasks: BackgroundTasks, db: Session = Depends(get_db)):
    result = country_service.refresh(db, schedule=background_tasks.add_task)
    return {
        "message": "Countries refreshed successfully",
        "processed": result.processed,
        "inserted": result.inserted,
        "updated": result.updated,
    }


@router.get(
    "",
    response_model=List[schemas.CountryOut],
    summary="List countries",
    description=(
        "Returns countries with optional filtering and sorting.\n\n"
        "Filters:\n"
        "- region: case-insensitive exact region match (e.g., 'Europe')\n"
        "- currency: 3-letter currency code (e.g., 'USD', 'NGN')\n\n"
        "Sorting options (sort): gdp_desc|gdp_asc|name_asc (default). "
        "Countries without an estimated GDP are listed last."
    ),
    response_description="List of countries",
)
def get_all(
    region: Optional[str] = Query(default=None, description="Filter by region (case-insensitive exact match)"),
    currency: Optional[str] = Query(default=None, description="Filter by currency code (ISO 4217)"),
    sort: Optional[str] = Query(default=None, description="Sort order: gdp_desc, gdp_asc or name_asc"),
    db: Session = Depends(get_db),
):
    return country_service.list_countries(db, region, currency, sort)


@router.get(
    "/status",
    response_model=schemas.StatusOut,
    summary="API/data status",
    description="Returns the number of countries stored and the timestamp of the last refresh.",
)
def get_status(db: Session = Depends(get_db)):
    return country_service.get_status(db)


@router.get(
    "/image",
    summary="Get generated summary image",
    description=(
        "Returns a PNG image summarizing dataset insights (top 5 GDP countries, total count, last refresh time)."
    ),
)
def get_image():
    img_path = summary_image_path()
    if not img_path.exists():
        raise NotFound("Summary image not found")
    return FileResponse(str(img_path), media_type="image/png")


@router.get(
    "/{name}",
    response_model=schemas.CountryOut,
    summary="Get country by name",
    description="Case-insensitive exact country name match.",
)
def get_one(
    name: str = Path(..., description="Exact country name"),
    db: Session = Depends(get_db),
):
    return country_service.get_country_by_name(db, name)


@router.delete(
    "/{name}",
    response_model=schemas.MessageOut,
    summary="Delete a country by name",
    description="Deletes a country if it exists (case-insensitive name match).",
)
def delete_country(
    name: str = Path(..., description="Exact country name"),
    db: Session = Depends(get_db),
):
    return country_service.delete_country_by_name(db, name)
