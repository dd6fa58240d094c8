"""
Remote Temperature Service Client

Minimal client for the accessory catalog of a networked Homebridge-style
server: a no-auth credential exchange plus catalog and single-accessory reads.
"""

import logging
from typing import Any, Optional

import requests

from .exceptions import AuthenticationError, RemoteFetchError
from .models import AuthToken

logger = logging.getLogger(__name__)


class RemoteTemperatureClient:
    """Simple REST client for the remote accessory catalog."""

    def __init__(self, base_url: str, timeout: float = 5):
        """Initialize the client.

        Args:
            base_url: Remote server URL (e.g., "http://homebridge.local:8581")
            timeout: Per-request timeout in seconds
        """
        self.base_url = base_url.rstrip("/")
        # Create a session for connection pooling
        self.session = requests.Session()
        self.session.headers.update({"Content-Type": "application/json"})
        self.timeout = timeout

    def authenticate(self) -> AuthToken:
        """Exchange for a bearer token.

        Returns:
            Token with its expiry resolved to an absolute instant

        Raises:
            AuthenticationError: If the exchange fails or the body is malformed
        """
        url = f"{self.base_url}/api/auth/noauth"
        try:
            response = self.session.post(url, timeout=self.timeout)
            logger.debug(f"Status: {response.status_code} {response.text}")
            response.raise_for_status()
            return AuthToken.from_response(response.json())
        except requests.exceptions.RequestException as e:
            raise AuthenticationError(f"Credential exchange failed: {e}") from e
        except (ValueError, KeyError, TypeError) as e:
            raise AuthenticationError(f"Malformed credential response: {e}") from e

    def list_accessories(self, token: AuthToken) -> list[dict[str, Any]]:
        """Get the whole accessory catalog.

        Entries that are not objects are skipped.

        Raises:
            AuthenticationError: If the token was rejected (401)
            RemoteFetchError: If the request fails
        """
        data = self._get("/api/accessories", token)
        if not isinstance(data, list):
            raise RemoteFetchError(f"Unexpected catalog payload: {type(data).__name__}")
        accessories = [a for a in data if isinstance(a, dict)]
        if len(accessories) != len(data):
            logger.warning(f"Skipped {len(data) - len(accessories)} malformed catalog entries")
        return accessories

    def get_accessory(self, unique_id: str, token: AuthToken) -> dict[str, Any]:
        """Get one accessory by its unique id.

        Raises:
            AuthenticationError: If the token was rejected (401)
            RemoteFetchError: If the request fails or the accessory is unknown
        """
        data = self._get(f"/api/accessories/{unique_id}", token)
        if not isinstance(data, dict):
            raise RemoteFetchError(f"Unexpected accessory payload: {type(data).__name__}")
        return data

    def _get(self, path: str, token: AuthToken) -> Any:
        url = f"{self.base_url}{path}"
        headers = {"Authorization": f"Bearer {token.access_token}"}
        try:
            response = self.session.get(url, headers=headers, timeout=self.timeout)
            logger.debug(f"Status: {response.status_code} GET {path}")
            response.raise_for_status()
            return response.json()
        except requests.exceptions.HTTPError as e:
            status = e.response.status_code if e.response is not None else None
            if status == 401:
                raise AuthenticationError(f"Token rejected for {path}", status) from e
            raise RemoteFetchError(f"Failed to GET {path}: {e}", status) from e
        except requests.exceptions.RequestException as e:
            raise RemoteFetchError(f"Remote API request failed: {e}") from e
        except ValueError as e:
            raise RemoteFetchError(f"Invalid JSON from {path}: {e}") from e


def accessory_identities(accessory: dict[str, Any]) -> set[str]:
    """Identities an accessory can be matched by: serial number and unique id."""
    identities = set()
    info = accessory.get("accessoryInformation")
    serial = info.get("Serial Number") if isinstance(info, dict) else None
    if serial:
        identities.add(str(serial))
    if accessory.get("uniqueId"):
        identities.add(str(accessory["uniqueId"]))
    return identities


def accessory_temperature(accessory: dict[str, Any]) -> Optional[float]:
    """CurrentTemperature of an accessory, or None if it has none."""
    try:
        return float(accessory["values"]["CurrentTemperature"])
    except (KeyError, TypeError, ValueError):
        return None
