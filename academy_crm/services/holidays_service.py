"""
Israeli holiday calendar (Hebcal)
Meeting generation skips dates returned here
"""

import logging
from datetime import date

import httpx

from ..cache import ProviderCache
from ..config import EXTERNAL_HTTP_TIMEOUT, HOLIDAYS_API_URL, HOLIDAYS_CACHE_TTL

logger = logging.getLogger(__name__)

holiday_cache = ProviderCache("holidays", HOLIDAYS_CACHE_TTL)

# Holidays on which classes do not take place
MAJOR_HOLIDAYS = (
    "Rosh Hashana",
    "Yom Kippur",
    "Sukkot",
    "Shmini Atzeret",
    "Simchat Torah",
    "Pesach",
    "Shavuot",
    "Yom HaAtzma'ut",
    "Yom HaZikaron",
    "Purim",
    "Chanukah",
    "Tish'a B'Av",
)


def is_class_free_day(item: dict) -> bool:
    title = item.get("title", "")
    return (
        any(holiday in title for holiday in MAJOR_HOLIDAYS)
        or "Erev" in title
        or item.get("category") == "holiday"
    )


async def fetch_holidays(year: int) -> set[date]:
    """
    Holiday dates for a year, cached in Redis.

    Provider failures are logged and yield an empty set so scheduling can continue.
    """
    cached = holiday_cache.get(str(year))
    if cached is not None:
        return {date.fromisoformat(d) for d in cached}

    params = {
        "v": 1,
        "cfg": "json",
        "maj": "on",
        "min": "off",
        "mod": "off",
        "nx": "off",
        "year": year,
        "month": "x",
        "ss": "off",
        "mf": "off",
        "c": "off",
        "geo": "none",
    }
    try:
        async with httpx.AsyncClient(timeout=EXTERNAL_HTTP_TIMEOUT) as client:
            response = await client.get(HOLIDAYS_API_URL, params=params)
            response.raise_for_status()
            items = response.json().get("items", [])
    except (httpx.HTTPError, ValueError) as e:
        logger.error(f"❌ Failed to fetch holidays for {year}: {e}")
        return set()

    holidays = {
        date.fromisoformat(item["date"][:10]) for item in items if item.get("date") and is_class_free_day(item)
    }
    holiday_cache.set(str(year), sorted(d.isoformat() for d in holidays))
    logger.info(f"📅 Loaded {len(holidays)} holidays for {year}")
    return holidays


async def get_holidays_between(start: date, end: date) -> set[date]:
    holidays: set[date] = set()
    for year in range(start.year, end.year + 1):
        holidays |= await fetch_holidays(year)
    return {d for d in holidays if start <= d <= end}
