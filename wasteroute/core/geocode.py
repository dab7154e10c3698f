# wasteroute/core/geocode.py
from typing import Tuple

import httpx

from wasteroute.core.config import settings

NOMINATIM_URL = "https://nominatim.openstreetmap.org/search"


class GeocodeError(Exception):
    pass


async def geocode_address(address: str) -> Tuple[float, float]:
    """
    Returns (lat, lng). Raises GeocodeError on failure or when no geocoder
    is configured.
    """
    a = (address or "").strip()
    if not a:
        raise GeocodeError("Empty address")
    if settings.geocoder == "none":
        raise GeocodeError("Geocoding disabled")

    # Nominatim policy: identify the application in the User-Agent
    headers = {"User-Agent": f"WasteRoute/1.0 (+{settings.admin_contact})"}
    try:
        async with httpx.AsyncClient(timeout=settings.geocode_timeout_s) as c:
            r = await c.get(NOMINATIM_URL, params={"q": a, "format": "json", "limit": 1}, headers=headers)
            r.raise_for_status()
            js = r.json()
    except httpx.HTTPError as ex:
        raise GeocodeError(str(ex)) from ex
    if not js:
        raise GeocodeError("No results")
    lat, lng = float(js[0]["lat"]), float(js[0]["lon"])
    if not (-90 <= lat <= 90 and -180 <= lng <= 180):
        raise GeocodeError("Out of range coordinates")
    return lat, lng
