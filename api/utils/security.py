import secrets
from typing import Annotated

from fastapi import HTTPException, status
from fastapi.params import Security
from fastapi.security import APIKeyHeader

from api.config import settings


api_key_header_scheme = APIKeyHeader(name="x-api-key", auto_error=False)


def generate_api_key() -> str:
    """Generate a random API key"""
    return secrets.token_urlsafe(32)


def get_api_key(api_key_header: Annotated[str | None, Security(api_key_header_scheme)]) -> str:
    """Validate the API key from the x-api-key header.

    Args:
        api_key_header: The API key passed in the x-api-key header.

    Returns:
        The validated API key.

    Raises:
        HTTPException: If the API key is invalid, missing, or none is configured.
    """
    key = settings.api_key_dev
    if key and api_key_header and secrets.compare_digest(api_key_header, key):
        return api_key_header
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid or missing API Key")
