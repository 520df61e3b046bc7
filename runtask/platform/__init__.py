"""Platform API calls — the three outbound requests a run task makes.

Each module wraps one call against the platform's API:

    configuration  — download the configuration version archive (pre_plan)
    plans          — fetch the JSON execution plan (post_plan)
    task_results   — PATCH the pass/fail result to the callback URL

Every call opens its own ``httpx.AsyncClient`` so redirect policy stays a
per-call decision. ``transport`` lets tests swap in ``httpx.MockTransport``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import httpx

if TYPE_CHECKING:
    from runtask.config import RedirectPolicy

JSON_API_CONTENT_TYPE = "application/vnd.api+json"


class FetchError(RuntimeError):
    """A platform fetch failed (network error, bad status, or bad body)."""


def auth_headers(token: str, *, json_api: bool = False) -> dict[str, str]:
    headers = {"Authorization": f"Bearer {token}"}
    if json_api:
        headers["Content-Type"] = JSON_API_CONTENT_TYPE
    return headers


def build_client(
    redirects: RedirectPolicy | None = None,
    timeout: float | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    """Return an AsyncClient configured for one call.

    ``redirects=None`` disables redirect following entirely.
    """
    follow = bool(redirects and redirects.follow)
    kwargs = {
        "follow_redirects": follow,
        "timeout": httpx.Timeout(timeout),
        "transport": transport,
    }
    if follow:
        kwargs["max_redirects"] = redirects.max_redirects
    return httpx.AsyncClient(**kwargs)
