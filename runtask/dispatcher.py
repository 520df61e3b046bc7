"""Stage dispatcher — runs the follow-up work for a validated run task request.

Called after the 200 has gone out, so nothing here can reach the caller's
HTTP response. Outcomes travel back as a ``DispatchResult`` and end up in
the log; the platform only learns about them through the callback.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING

from runtask.platform import FetchError
from runtask.platform.configuration import download_config
from runtask.platform.plans import get_plan
from runtask.platform.task_results import send_callback
from runtask.schemas import DispatchResult, RunTaskPayload

if TYPE_CHECKING:
    import httpx

    from runtask.config import RunTaskConfig

logger = logging.getLogger(__name__)


async def dispatch(
    payload: RunTaskPayload,
    config: RunTaskConfig,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
) -> DispatchResult:
    """Branch on the payload's stage and run the matching fetch + callback."""
    result = DispatchResult(stage=payload.stage, run_id=payload.run_id, outcome="skipped")

    if payload.is_probe:
        result.detail = "verification probe"
        return result

    match payload.stage:
        case "pre_plan":
            return await _pre_plan(payload, config, result, transport)
        case "post_plan":
            return await _post_plan(payload, config, result, transport)
        case _:
            result.outcome = "ignored"
            result.detail = f"unhandled stage {payload.stage!r}"
            return result


async def _pre_plan(payload, config, result, transport) -> DispatchResult:
    url = payload.configuration_version_download_url
    if not url:
        return await _fail(
            payload, config, result, transport, "missing configuration_version_download_url"
        )

    dest = config.archive_path(payload.run_id)
    try:
        await download_config(
            url,
            payload.access_token or "",
            dest,
            redirects=config.config_redirects,
            timeout=config.http_timeout,
            transport=transport,
        )
    except FetchError as e:
        return await _fail(payload, config, result, transport, str(e))

    logger.info(
        f"Config downloaded for Workspace: {payload.organization_name}/{payload.workspace_name}, "
        f"Run: {payload.run_id}\n downloaded at {dest.resolve()}"
    )
    return await _pass(payload, config, result, transport, f"archive at {dest}")


async def _post_plan(payload, config, result, transport) -> DispatchResult:
    url = payload.plan_json_api_url
    if not url:
        return await _fail(payload, config, result, transport, "missing plan_json_api_url")

    try:
        plan = await get_plan(
            url,
            payload.access_token or "",
            redirects=config.plan_redirects,
            timeout=config.http_timeout,
            transport=transport,
        )
    except FetchError as e:
        return await _fail(payload, config, result, transport, str(e))

    logger.info(
        f"Plan output for {payload.organization_name}/{payload.workspace_id}/{payload.run_id}\n"
        f"{json.dumps(plan, indent=2)}"
    )
    return await _pass(payload, config, result, transport, "plan retrieved")


async def _pass(payload, config, result, transport, detail: str) -> DispatchResult:
    result.outcome = "passed"
    result.detail = detail
    if payload.task_result_callback_url:
        result.callback_sent = await send_callback(
            payload.task_result_callback_url,
            payload.access_token or "",
            "passed",
            config.report.message,
            config.report.url,
            timeout=config.http_timeout,
            transport=transport,
        )
    else:
        logger.warning(f"Run {payload.run_id}: no task_result_callback_url, result not reported")
    return result


async def _fail(payload, config, result, transport, reason: str) -> DispatchResult:
    logger.error(f"Run {payload.run_id} ({payload.stage}) failed: {reason}")
    result.outcome = "failed"
    result.detail = reason
    if config.report_failures and payload.task_result_callback_url:
        result.callback_sent = await send_callback(
            payload.task_result_callback_url,
            payload.access_token or "",
            "failed",
            f"Run task could not complete: {reason}",
            config.report.url,
            timeout=config.http_timeout,
            transport=transport,
        )
    return result


async def run_in_background(
    payload: RunTaskPayload,
    config: RunTaskConfig,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
) -> DispatchResult | None:
    """Detached unit of work scheduled after the acknowledgment.

    Every outcome is logged here. Unexpected exceptions are logged with a
    traceback and turned into ``None``.
    """
    try:
        result = await dispatch(payload, config, transport=transport)
    except Exception as e:
        logger.error(f"Dispatch for run {payload.run_id} crashed: {e}", exc_info=True)
        return None

    logger.info(
        f"Run task finished: stage={result.stage}, run={result.run_id}, "
        f"outcome={result.outcome}, callback_sent={result.callback_sent}, detail={result.detail}"
    )
    return result
