from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any

import httpx


LOGGER = logging.getLogger("status-monitoring")

GITHUB_API = "https://api.github.com"
PER_PAGE = 100
REQUEST_TIMEOUT_SECONDS = 20.0


@dataclass(frozen=True)
class GithubRepo:
    owner: str
    repo: str
    token: str | None = None

    def headers(self) -> dict[str, str]:
        headers = {"Accept": "application/vnd.github.v3+json"}
        if self.token:
            headers["Authorization"] = f"token {self.token}"
        return headers


async def fetch_issues_with_label(
    client: httpx.AsyncClient,
    repo: GithubRepo,
    label: str,
    *,
    state: str = "all",
    base_url: str = GITHUB_API,
) -> list[dict[str, Any]]:
    """
    All issues carrying `label`, most recently updated first. On an API error the pages fetched
    so far are returned.
    """
    issues: list[dict[str, Any]] = []
    if not label:
        return issues

    page = 1
    while True:
        params = {
            "state": state,
            "labels": label,
            "per_page": str(PER_PAGE),
            "page": str(page),
            "sort": "updated",
            "direction": "desc",
        }
        url = f"{base_url}/repos/{repo.owner}/{repo.repo}/issues"
        try:
            resp = await client.get(url, params=params, headers=repo.headers(), timeout=REQUEST_TIMEOUT_SECONDS)
        except httpx.HTTPError as exc:
            LOGGER.warning("Fetching issues failed label=%s error=%s: %s", label, type(exc).__name__, exc)
            return issues
        if not resp.is_success:
            LOGGER.warning("Fetching issues failed label=%s status_code=%s", label, resp.status_code)
            return issues

        try:
            batch = resp.json()
        except ValueError as exc:
            LOGGER.warning("Issue list is not JSON label=%s error=%s", label, exc)
            return issues
        if not isinstance(batch, list):
            return issues

        issues.extend(i for i in batch if isinstance(i, dict))
        if len(batch) < PER_PAGE:
            return issues
        page += 1


async def _fetch_comments(
    client: httpx.AsyncClient,
    repo: GithubRepo,
    number: int,
    *,
    base_url: str,
) -> tuple[int, list[dict[str, Any]]]:
    url = f"{base_url}/repos/{repo.owner}/{repo.repo}/issues/{number}/comments"
    try:
        resp = await client.get(url, headers=repo.headers(), timeout=REQUEST_TIMEOUT_SECONDS)
    except httpx.HTTPError as exc:
        LOGGER.warning("Fetching comments failed issue=%s error=%s", number, type(exc).__name__)
        return number, []
    if not resp.is_success:
        LOGGER.warning("Fetching comments failed issue=%s status_code=%s", number, resp.status_code)
        return number, []
    try:
        data = resp.json()
    except ValueError:
        return number, []
    return number, [c for c in data if isinstance(c, dict)] if isinstance(data, list) else []


async def fetch_comments_for_issues(
    client: httpx.AsyncClient,
    repo: GithubRepo,
    numbers: list[int],
    *,
    base_url: str = GITHUB_API,
) -> dict[int, list[dict[str, Any]]]:
    results = await asyncio.gather(*(_fetch_comments(client, repo, n, base_url=base_url) for n in numbers))
    return dict(results)
