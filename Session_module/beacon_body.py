"""
Request body reader for endpoints that beacon-style transports post to.

Beacons cannot set custom headers and usually arrive as text/plain, so the
body is parsed as JSON whatever the declared content type.
"""
import json
import logging
from typing import Any, Dict, Optional

from fastapi import Request

logger = logging.getLogger(__name__)


async def read_beacon_body(request: Request) -> Optional[Dict[str, Any]]:
    """Parsed JSON object, {} for an empty body, None when the body is not a JSON object."""
    raw = await request.body()
    if not raw or not raw.strip():
        return {}
    try:
        payload = json.loads(raw)
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        logger.warning(
            f"Unparseable body on {request.url.path} "
            f"(content-type={request.headers.get('content-type')}): {e}"
        )
        return None
    if not isinstance(payload, dict):
        logger.warning(f"Body on {request.url.path} is JSON but not an object")
        return None
    return payload
