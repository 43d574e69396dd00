import logging
import os
from typing import Optional

from PIL import Image, ImageDraw, ImageFont

from config import settings
from models import Summary

logger = logging.getLogger(__name__)

FONT_DIR = "/usr/share/fonts/truetype/dejavu"


def _load_fonts():
    try:
        return (
            ImageFont.truetype(os.path.join(FONT_DIR, "DejaVuSans-Bold.ttf"), 32),
            ImageFont.truetype(os.path.join(FONT_DIR, "DejaVuSans-Bold.ttf"), 24),
            ImageFont.truetype(os.path.join(FONT_DIR, "DejaVuSans.ttf"), 18),
        )
    except OSError:
        default = ImageFont.load_default()
        return default, default, default


def generate_summary_image(summary: Summary, image_path: str = settings.IMAGE_PATH) -> str:
    """Render the summary to a PNG, overwriting image_path. Returns the path written."""
    directory = os.path.dirname(image_path)
    if directory:
        os.makedirs(directory, exist_ok=True)

    width = 800
    height = 600
    img = Image.new('RGB', (width, height), color='white')
    draw = ImageDraw.Draw(img)
    title_font, header_font, body_font = _load_fonts()

    draw.rectangle([0, 0, width, 100], fill='#2c3e50')
    title = "Country Summary Report"
    title_x = (width - draw.textlength(title, font=title_font)) / 2
    draw.text((title_x, 32), title, fill='white', font=title_font)

    y_offset = 130
    draw.text((50, y_offset), f"Total Countries: {summary.total}", fill='black', font=header_font)

    y_offset += 50
    draw.text((50, y_offset), "Top 5 Countries by Estimated GDP:", fill='black', font=header_font)

    y_offset += 40
    if not summary.top5:
        draw.text((70, y_offset), "No countries with a known GDP", fill='#7f8c8d', font=body_font)
        y_offset += 35
    for i, country in enumerate(summary.top5, 1):
        gdp_formatted = f"{country.estimated_gdp:,.2f}" if country.estimated_gdp else "N/A"
        currency = f" ({country.currency_code})" if country.currency_code else ""
        text = f"{i}. {country.name}{currency}: ${gdp_formatted}"
        draw.text((70, y_offset), text, fill='#34495e', font=body_font)
        y_offset += 35

    y_offset += 30
    draw.text((50, y_offset), f"Last Refreshed: {summary.last_refreshed_at}", fill='#7f8c8d', font=body_font)

    img.save(image_path, format="PNG")
    logger.info("Summary image written to %s", image_path)
    return image_path


def get_image_path(image_path: str = settings.IMAGE_PATH) -> Optional[str]:
    """Return image_path if the summary image has been generated, else None."""
    if os.path.isfile(image_path):
        return image_path
    return None
