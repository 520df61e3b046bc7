"""Configuration version download.

Docs: https://developer.hashicorp.com/terraform/cloud-docs/api-docs/configuration-versions#download-configuration-files
The download URL answers with a redirect to the archive itself.
"""

from __future__ import annotations

import asyncio
import logging
import os
import tempfile
from pathlib import Path
from typing import TYPE_CHECKING

import httpx

from runtask.platform import FetchError, auth_headers, build_client

if TYPE_CHECKING:
    from runtask.config import RedirectPolicy

logger = logging.getLogger(__name__)


async def download_config(
    url: str,
    token: str,
    dest: Path,
    *,
    redirects: RedirectPolicy | None = None,
    timeout: float | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> Path:
    """Stream the configuration archive at ``url`` into ``dest``.

    The body goes to a temp file next to ``dest`` and replaces it only once
    the stream has drained and the file is closed. On any failure the temp
    file is removed and whatever was at ``dest`` before stays in place.

    Raises:
        FetchError: network error, non-2xx response, too many redirects, or
            the archive could not be written locally.
    """
    tmp_path: Path | None = None
    written = 0

    try:
        dest.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{dest.name}.", dir=dest.parent)
        tmp_path = Path(tmp_name)
        with os.fdopen(fd, "wb") as fh:
            async with build_client(redirects, timeout, transport) as client:
                async with client.stream(
                    "GET", url, headers=auth_headers(token, json_api=True)
                ) as resp:
                    resp.raise_for_status()
                    async for chunk in resp.aiter_bytes():
                        await asyncio.to_thread(fh.write, chunk)
                        written += len(chunk)
        os.replace(tmp_path, dest)
    except httpx.HTTPStatusError as e:
        _discard(tmp_path)
        raise FetchError(
            f"Configuration download returned {e.response.status_code} for {url}"
        ) from e
    except httpx.HTTPError as e:
        _discard(tmp_path)
        raise FetchError(f"Configuration download failed for {url}: {e}") from e
    except OSError as e:
        _discard(tmp_path)
        raise FetchError(f"Could not write configuration archive to {dest}: {e}") from e
    except BaseException:
        _discard(tmp_path)
        raise

    logger.info(f"Wrote {written} bytes to {dest}")
    return dest


def _discard(tmp_path: Path | None) -> None:
    if tmp_path is not None:
        tmp_path.unlink(missing_ok=True)
