"""Run task receiver — FastAPI app.

Accepts signed run task requests on POST /, acknowledges them straight
away, and hands the stage work to a background task.
"""

from __future__ import annotations

import json
import logging
from contextlib import asynccontextmanager

import httpx
from fastapi import BackgroundTasks, Depends, FastAPI, HTTPException, Request, Response

from runtask.config import RunTaskConfig, load_config
from runtask.dispatcher import run_in_background
from runtask.schemas import RunTaskPayload
from runtask.signature import SIGNATURE_HEADER, compute_signature, signature_matches

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    config: RunTaskConfig = app.state.config
    logger.info(
        f"Run task receiver started (port={config.port}, "
        f"config_redirects={config.config_redirects.max_redirects}, "
        f"plan_redirects={config.plan_redirects.max_redirects})"
    )
    yield
    logger.info("Run task receiver shutting down")


# ---------------------------------------------------------------------------
# Signature dependency
# ---------------------------------------------------------------------------


async def verify_signature(request: Request) -> None:
    """Check the HMAC header against the raw body before anything is parsed."""
    config: RunTaskConfig = request.app.state.config
    body = await request.body()
    remote = request.headers.get(SIGNATURE_HEADER)

    if not signature_matches(body, config.hmac_key, remote):
        logger.warning(
            "HMAC validation failed.\n"
            f"    Received {remote}\n"
            f"    Computed {compute_signature(body, config.hmac_key)}"
        )
        raise HTTPException(status_code=401, detail="Unauthorized")


# ---------------------------------------------------------------------------
# App factory
# ---------------------------------------------------------------------------


def create_app(
    config: RunTaskConfig | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> FastAPI:
    """Build the receiver. ``transport`` is handed to every outbound call."""
    config = config or load_config()
    logging.getLogger().setLevel(config.log_level)

    app = FastAPI(title="Run Task Receiver", version="0.1.0", lifespan=lifespan)
    app.state.config = config
    app.state.transport = transport

    @app.post("/", dependencies=[Depends(verify_signature)])
    async def receive_run_task(request: Request, background_tasks: BackgroundTasks):
        """Acknowledge a run task request; stage work runs after the response."""
        try:
            payload = RunTaskPayload.model_validate(json.loads(await request.body()))
        except (ValueError, RecursionError) as e:
            logger.error(f"Signed request body is not a run task payload: {e}")
            return Response(status_code=200)

        background_tasks.add_task(
            run_in_background,
            payload,
            request.app.state.config,
            transport=request.app.state.transport,
        )
        return Response(status_code=200)

    @app.get("/health")
    async def health():
        """Liveness check."""
        return {"status": "healthy"}

    return app


app = create_app()
