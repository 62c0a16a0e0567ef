import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import PIL
from PIL import Image, ImageDraw, ImageFont
from sqlalchemy import select
from sqlalchemy.orm import Session

from country_api import crud, models
from country_api.config import settings

logger = logging.getLogger("country_api")

IMAGE_NAME = "summary.png"
TOP_N = 5

# Canvas / palette
WIDTH, HEIGHT = 800, 480
BG = (255, 255, 255)
FG = (34, 34, 34)
MUTED = (110, 110, 110)
GRID = (225, 230, 240)
HEADER_BG = (245, 247, 250)
STRIPE = (252, 253, 255)
ACCENT = (60, 99, 243)


@dataclass(frozen=True)
class SummaryRow:
    name: str
    estimated_gdp: Optional[float]


@dataclass(frozen=True)
class SummarySnapshot:
    total: int
    refreshed_at: Optional[datetime]
    top: list[SummaryRow] = field(default_factory=list)


def summary_image_path() -> Path:
    return settings.cache_dir / IMAGE_NAME


def build_summary_snapshot(db: Session, refreshed_at: Optional[datetime] = None) -> SummarySnapshot:
    """Read what the summary image shows: total count and the top countries by estimated GDP."""
    rows = db.scalars(
        select(models.Country)
        .where(models.Country.estimated_gdp.is_not(None))
        .order_by(models.Country.estimated_gdp.desc())
        .limit(TOP_N)
    ).all()
    return SummarySnapshot(
        total=crud.count_countries(db),
        refreshed_at=refreshed_at or crud.get_last_refreshed_at(db),
        top=[SummaryRow(c.name, c.estimated_gdp) for c in rows],
    )


def format_gdp(val: Optional[float]) -> str:
    """Compact dollar figure, e.g. ``$1.2B``."""
    if val is None:
        return "-"
    n = float(val)
    for div, suffix in ((1e12, "T"), (1e9, "B"), (1e6, "M"), (1e3, "K")):
        if abs(n) >= div:
            s = f"{n / div:.1f}".rstrip("0").rstrip(".")
            return f"${s}{suffix}"
    return f"${n:,.0f}"


def format_timestamp(dt: Optional[datetime]) -> str:
    if dt is None:
        return "(unknown)"
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).strftime("%Y-%m-%d %H:%M UTC")


def _load_font(name: str, size: int):
    base = Path(PIL.__file__).parent
    for p in (base / name, base / "fonts" / name, base.parent / name):
        if p.exists():
            try:
                return ImageFont.truetype(str(p), size)
            except OSError:
                break
    return ImageFont.load_default()


def _right_text(draw: ImageDraw.ImageDraw, x_right: int, y: int, text: str, font):
    left, _, right, _ = draw.textbbox((0, 0), text, font=font)
    draw.text((x_right - (right - left), y), text, fill=FG, font=font)


def render_summary_image(snapshot: SummarySnapshot, path: Optional[Path] = None) -> Path:
    """Draw the summary table (Rank | Country | Estimated GDP) and save it as PNG."""
    path = path or summary_image_path()
    path.parent.mkdir(parents=True, exist_ok=True)

    img = Image.new("RGB", (WIDTH, HEIGHT), color=BG)
    draw = ImageDraw.Draw(img)
    font_title = _load_font("DejaVuSans-Bold.ttf", 20)
    font_bold = _load_font("DejaVuSans-Bold.ttf", 16)
    font = _load_font("DejaVuSans.ttf", 16)

    margin = 24
    draw.text((margin, margin), "Country Currency & Exchange - Summary", fill=ACCENT, font=font_title)
    draw.text(
        (margin, margin + 30),
        f"Total Countries: {snapshot.total}  |  Last Refresh: {format_timestamp(snapshot.refreshed_at)}",
        fill=MUTED,
        font=font,
    )

    left, right = margin, WIDTH - margin
    top = margin + 64
    header_h, row_h = 40, 38
    x_country = left + 70
    x_gdp_right = right - 12

    draw.rectangle([left, top, right, top + header_h], fill=HEADER_BG)
    draw.text((left + 12, top + 11), "#", fill=FG, font=font_bold)
    draw.text((x_country + 12, top + 11), "Country", fill=FG, font=font_bold)
    _right_text(draw, x_gdp_right, top + 11, "Estimated GDP (USD)", font_bold)

    y = top + header_h
    for i in range(TOP_N):
        if i % 2 == 0:
            draw.rectangle([left, y, right, y + row_h], fill=STRIPE)
        if i < len(snapshot.top):
            row = snapshot.top[i]
            draw.text((left + 12, y + 10), str(i + 1), fill=FG, font=font)
            draw.text((x_country + 12, y + 10), row.name, fill=FG, font=font)
            _right_text(draw, x_gdp_right, y + 10, format_gdp(row.estimated_gdp), font)
        draw.line([left, y + row_h, right, y + row_h], fill=GRID, width=1)
        y += row_h

    draw.rectangle([left, top, right, y], outline=GRID, width=1)
    draw.text((margin, y + 16), "Data sources: Rest Countries API, Exchange Rates API (base USD)", fill=MUTED, font=font)

    img.save(str(path))
    return path


def regenerate_summary_image(snapshot: SummarySnapshot) -> None:
    """Background-task entry point; rendering failures are logged, never raised."""
    try:
        path = render_summary_image(snapshot)
        logger.info("Summary image written to %s", path)
    except Exception:
        logger.exception("Failed to generate summary image")
