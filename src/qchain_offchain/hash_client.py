"""
Quantum Hash Service Client

HTTP client for the external service that derives a quantum-resistant hash
from image bytes plus name and description.

    POST {base_url}/generate-hash  {"image_data": <base64>, "name": ..., "description": ...}
    -> {"quantum_hash": "..."}
"""

import base64
import logging
from typing import Optional

import httpx

from .errors import ExternalServiceError


logger = logging.getLogger(__name__)


class ExternalHashClient:
    """Async client for the hash-generation service"""

    def __init__(
        self,
        base_url: str,
        timeout: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    async def generate_hash(self, image_bytes: bytes, name: str, description: str) -> str:
        """
        Request a quantum hash for an image

        Args:
            image_bytes: Raw image content
            name: Asset name
            description: Asset description

        Returns:
            The quantum hash string

        Raises:
            ExternalServiceError: Service unreachable, non-2xx, or malformed answer
        """
        payload = {
            "image_data": base64.b64encode(image_bytes).decode("ascii"),
            "name": name,
            "description": description,
        }

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(f"{self.base_url}/generate-hash", json=payload)
        except httpx.HTTPError as e:
            logger.error(f"Hash service unreachable: {e}")
            raise ExternalServiceError(f"Hash service unreachable: {e}") from e

        if response.status_code < 200 or response.status_code >= 300:
            logger.error(f"Hash service returned {response.status_code}: {response.text[:200]}")
            raise ExternalServiceError(
                f"Hash service returned HTTP {response.status_code}", status_code=response.status_code
            )

        try:
            data = response.json()
        except ValueError as e:
            raise ExternalServiceError("Hash service returned invalid JSON", status_code=response.status_code) from e

        quantum_hash = data.get("quantum_hash") if isinstance(data, dict) else None
        if not quantum_hash or not isinstance(quantum_hash, str):
            raise ExternalServiceError("Hash service response has no quantum_hash", status_code=response.status_code)

        logger.info(f"Generated quantum hash for '{name}'")
        return quantum_hash

    async def check_health(self) -> bool:
        """True when the service answers its health endpoint"""
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.get(f"{self.base_url}/health")
        except httpx.HTTPError as e:
            logger.warning(f"Hash service health check failed: {e}")
            return False
        return response.is_success
