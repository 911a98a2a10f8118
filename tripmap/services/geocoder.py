"""
External geocoding client.

Talks to a Google-style geocoding endpoint and maps its answer to
``{"status": ..., "results": [{"formattedAddress", "lat", "lng"}]}``.
The client is fail-soft: network errors, HTTP errors and malformed bodies
come back as status ``"ERROR"`` instead of raising.
"""

import logging
from typing import Any, Dict, Optional

import requests

from ..utils.config import DEFAULT_GEOCODER_URL

logger = logging.getLogger(__name__)

STATUS_OK = "OK"
STATUS_ERROR = "ERROR"


class Geocoder:
    """HTTP geocoder for free-text addresses."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: str = DEFAULT_GEOCODER_URL,
        timeout_seconds: float = 10.0,
        session: Optional[requests.Session] = None
    ):
        self.api_key = api_key
        self.base_url = base_url
        self.timeout_seconds = timeout_seconds
        self.session = session or requests.Session()

    def geocode(self, text: str) -> Dict[str, Any]:
        """
        Geocode an address.

        Args:
            text: Address as typed by the user

        Returns:
            Dict with ``status`` and a list of ``results``
        """
        params = {"address": text}
        if self.api_key:
            params["key"] = self.api_key

        try:
            response = self.session.get(self.base_url, params=params, timeout=self.timeout_seconds)
            response.raise_for_status()
            body = response.json()
        except (requests.RequestException, ValueError) as e:
            logger.warning(f"Geocoder request failed for '{text}': {e}")
            return {"status": STATUS_ERROR, "results": []}

        status = body.get("status", STATUS_ERROR)
        results = []
        for item in body.get("results") or []:
            try:
                location = item["geometry"]["location"]
                results.append({
                    "formattedAddress": item.get("formatted_address") or text,
                    "lat": float(location["lat"]),
                    "lng": float(location["lng"]),
                })
            except (KeyError, TypeError, ValueError):
                logger.debug(f"Skipping malformed geocoder result for '{text}'")

        if status != STATUS_OK:
            logger.info(f"Geocoder returned {status} for '{text}'")
        return {"status": status, "results": results}
