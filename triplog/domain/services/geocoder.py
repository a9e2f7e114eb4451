"""
Reverse geocoding via the Google Geocoding API
"""
import httpx

from triplog.core.circuit_breaker import get_geocoder_circuit_breaker
from triplog.core.config import settings
from triplog.core.exceptions import GeocoderError, ServiceTimeoutError
from triplog.core.logging import get_logger

logger = get_logger(__name__)

GEOCODE_URL = "https://maps.googleapis.com/maps/api/geocode/json"
_TIMEOUT_SECONDS = 5.0


class GoogleReverseGeocoder:
    """Coordinates → formatted address (first result)"""

    def __init__(
        self,
        api_key: str | None = None,
        language: str | None = None,
        timeout: float = _TIMEOUT_SECONDS,
    ):
        self.api_key = api_key if api_key is not None else settings.GOOGLE_MAPS_API_KEY
        self.language = language or settings.GEOCODER_LANGUAGE
        self.timeout = timeout

    async def reverse_geocode(self, latitude: float, longitude: float) -> str | None:
        """
        Return the formatted address, or None when the API has no result.

        Raises:
            GeocoderError: non-200 response or an error status from the API
            ServiceTimeoutError: request timed out
            CircuitBreakerOpenError: recent failures, request not attempted
        """
        if not self.api_key:
            logger.debug("GOOGLE_MAPS_API_KEY not configured, skipping reverse geocoding")
            return None

        params = {
            "latlng": f"{latitude},{longitude}",
            "language": self.language,
            "key": self.api_key,
        }

        async def _lookup() -> str | None:
            try:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.get(GEOCODE_URL, params=params)
            except httpx.TimeoutException:
                raise ServiceTimeoutError("geocoder", self.timeout)
            except httpx.HTTPError as e:
                raise GeocoderError(f"request failed: {e}")

            if response.status_code != 200:
                raise GeocoderError(
                    f"geocode returned status {response.status_code}",
                    details={"status_code": response.status_code},
                )

            data = response.json()
            status = data.get("status")
            if status == "ZERO_RESULTS":
                return None
            if status != "OK":
                raise GeocoderError(
                    f"geocode status {status}",
                    details={"status": status, "error_message": data.get("error_message")},
                )
            results = data.get("results") or []
            return results[0].get("formatted_address") if results else None

        return await get_geocoder_circuit_breaker().execute(_lookup)
