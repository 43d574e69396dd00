"""
Render a summary image from canned data, for checking the layout by eye.

Usage: python sample_image.py [output_path]
"""

import logging
import sys
from datetime import datetime, timezone

from config import settings, setup_logging
from image_generator import generate_summary_image
from models import CountryResponse, Summary, to_iso

logger = logging.getLogger(__name__)

SAMPLE_TOP5 = [
    ("Country A", 9_000_000_000, "AAA", 50_000_000),
    ("Country B", 8_000_000_000, "BBB", 30_000_000),
    ("Country C", 7_000_000_000, "CCC", 20_000_000),
    ("Country D", 6_000_000_000, "DDD", 10_000_000),
    ("Country E", 5_000_000_000, "EEE", 5_000_000),
]


def build_sample_summary() -> Summary:
    top5 = [
        CountryResponse(
            id=i,
            name=name,
            population=population,
            currency_code=code,
            estimated_gdp=gdp,
        )
        for i, (name, gdp, code, population) in enumerate(SAMPLE_TOP5, 1)
    ]
    return Summary(
        total=len(top5),
        top5=top5,
        last_refreshed_at=to_iso(datetime.now(timezone.utc)),
    )


def main(argv=None) -> int:
    argv = sys.argv[1:] if argv is None else argv
    out = argv[0] if argv else settings.IMAGE_PATH
    try:
        path = generate_summary_image(build_sample_summary(), out)
    except OSError:
        logger.exception("Failed to generate sample image")
        return 1
    logger.info("Sample image generated at: %s", path)
    return 0


if __name__ == "__main__":
    setup_logging()
    sys.exit(main())
