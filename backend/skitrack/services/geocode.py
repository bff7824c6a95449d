import logging

import httpx

from skitrack.core.config import settings

logger = logging.getLogger(__name__)

# Most specific first
_PLACE_KEYS = ("village", "town", "city", "municipality", "county")


def reverse_geocode(lat: float, lon: float, client: httpx.Client | None = None) -> str | None:
    """Return a locality name for a coordinate, or None when unavailable.

    Queries the Nominatim-compatible endpoint in `settings.geocode_url`.
    Network, HTTP and decoding errors are logged and yield None so callers
    can fall back to a generic name.
    """
    params = {"format": "json", "lat": lat, "lon": lon, "zoom": 10, "addressdetails": 1}
    own_client = client is None
    if own_client:
        client = httpx.Client(
            timeout=settings.geocode_timeout_seconds,
            headers={"User-Agent": settings.geocode_user_agent},
        )
    try:
        r = client.get(settings.geocode_url, params=params)
        r.raise_for_status()
        data = r.json()
    except (httpx.HTTPError, ValueError) as e:
        logger.warning("Reverse geocoding failed for %.5f,%.5f: %s", lat, lon, e)
        return None
    finally:
        if own_client:
            client.close()

    address = data.get("address") if isinstance(data, dict) else None
    if not isinstance(address, dict):
        return None
    for key in _PLACE_KEYS:
        if address.get(key):
            return str(address[key])
    return None
