"""Task result callback.

Docs: https://developer.hashicorp.com/terraform/cloud-docs/integrations/run-tasks#request-body-1
"""

from __future__ import annotations

import logging

import httpx

from runtask.platform import auth_headers, build_client
from runtask.schemas import TaskResult, TaskStatus

logger = logging.getLogger(__name__)


async def send_callback(
    callback_url: str,
    token: str,
    status: TaskStatus,
    message: str,
    url: str,
    *,
    timeout: float | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> bool:
    """PATCH a task result to the platform. Best effort, single attempt.

    Delivery problems are logged, never raised. Returns True when the
    platform answered with a 2xx.
    """
    body = TaskResult.build(status, message, url).model_dump_json()

    try:
        async with build_client(None, timeout, transport) as client:
            resp = await client.patch(
                callback_url,
                content=body,
                headers=auth_headers(token, json_api=True),
            )
    except httpx.HTTPError as e:
        logger.error(f"Task result callback to {callback_url} failed: {e}")
        return False

    if not resp.is_success:
        logger.warning(
            f"Task result callback to {callback_url} returned {resp.status_code}: "
            f"{resp.text[:200]}"
        )
        return False

    logger.info(f"Reported '{status}' to {callback_url}")
    return True
