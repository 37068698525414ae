"""Test helper functions."""

import base64
import json
from typing import Any, Dict, Optional


def encode_image(data: bytes, data_uri: bool = False) -> str:
    encoded = base64.b64encode(data).decode("ascii")
    return f"data:image/jpeg;base64,{encoded}" if data_uri else encoded


def create_vercel_request(
    method: str = "GET",
    path: str = "/api/listings",
    body: Any = None,
    token: Optional[str] = None,
    query: Optional[Dict[str, str]] = None,
    headers: Optional[Dict[str, str]] = None,
) -> Dict[str, Any]:
    """Create a Vercel request object for testing."""
    request_headers = {"content-type": "application/json"}
    if token:
        request_headers["authorization"] = f"Bearer {token}"
    if headers:
        request_headers.update(headers)

    return {
        "method": method,
        "path": path,
        "headers": request_headers,
        "body": json.dumps(body) if isinstance(body, dict) else body,
        "query": query or {},
    }
