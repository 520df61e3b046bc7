"""JSON execution plan retrieval.

Docs: https://developer.hashicorp.com/terraform/cloud-docs/api-docs/plans#retrieve-the-json-execution-plan
The API URL returns a 307 Temporary Redirect to the plan document.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import httpx

from runtask.platform import FetchError, auth_headers, build_client

if TYPE_CHECKING:
    from runtask.config import RedirectPolicy

logger = logging.getLogger(__name__)


async def get_plan(
    url: str,
    token: str,
    *,
    redirects: RedirectPolicy | None = None,
    timeout: float | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> Any:
    """Fetch and parse the JSON plan behind ``url``. The content is not validated."""
    try:
        async with build_client(redirects, timeout, transport) as client:
            resp = await client.get(url, headers=auth_headers(token))
            resp.raise_for_status()
    except httpx.HTTPStatusError as e:
        raise FetchError(f"Plan fetch returned {e.response.status_code} for {url}") from e
    except httpx.HTTPError as e:
        raise FetchError(f"Plan fetch failed for {url}: {e}") from e

    if resp.history:
        logger.debug(f"Plan fetch followed {len(resp.history)} redirect(s) to {resp.url}")

    try:
        return resp.json()
    except ValueError as e:
        raise FetchError(f"Plan at {resp.url} is not valid JSON: {e}") from e
