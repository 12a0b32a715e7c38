from __future__ import annotations

import asyncio
import base64
import json
import logging
import re
from typing import Any, Callable, Dict, Iterable, List, Optional, TypeVar

import httpx

from ..core.config import Settings, get_settings
from ..core.errors import OpenProjectError, OpenProjectNotConfigured, UpstreamUnavailable
from ..schemas.openproject import Membership, PersonRef, WorkPackage, embedded_elements

logger = logging.getLogger(__name__)

API_PREFIX = "/api/v3"
PROJECTS_PAGE_SIZE = 100
# OpenProject's filter operator for "any open status".
OPEN_STATUS_OPERATOR = "o"

T = TypeVar("T")


def normalize_base_url(url: str) -> str:
    """Turn ``op.example.com/`` into ``http://op.example.com/api/v3``."""

    normalized = (url or "").strip()
    if not re.match(r"^https?://", normalized, re.IGNORECASE):
        normalized = "http://" + normalized
    normalized = normalized.rstrip("/")
    if not normalized.lower().endswith(API_PREFIX):
        normalized += API_PREFIX
    return normalized


def build_auth_header(token: str) -> str:
    credentials = base64.b64encode(f"apikey:{token}".encode("utf-8")).decode("ascii")
    return f"Basic {credentials}"


def _error_message(response: httpx.Response) -> tuple[str, Any]:
    try:
        body = response.json()
    except ValueError:
        body = response.text or None
    message = None
    if isinstance(body, dict):
        message = body.get("message")
    return message or response.reason_phrase or f"HTTP {response.status_code}", body


def _parse_elements(elements: Iterable[Dict[str, Any]], parser: Callable[[Dict[str, Any]], T], context: str) -> List[T]:
    try:
        return [parser(element) for element in elements]
    except (KeyError, TypeError, ValueError) as exc:
        logger.error("Malformed OpenProject payload during %s: %s", context, exc)
        raise UpstreamUnavailable(f"Malformed OpenProject response during {context}") from exc


def _raise_for_status(response: httpx.Response, context: str) -> None:
    if response.is_success:
        return
    message, details = _error_message(response)
    if response.status_code in {401, 403}:
        logger.warning("OpenProject rejected credentials for %s", context)
    elif response.status_code >= 500:
        logger.error("OpenProject service error %s during %s", response.status_code, context)
        raise UpstreamUnavailable(message, details=details, status_code=response.status_code)
    else:
        logger.info("OpenProject request error %s during %s", response.status_code, context)
    raise OpenProjectError(response.status_code, message, details)


class OpenProjectClient:
    """HTTP client bound to one caller's OpenProject credential.

    Build one per request and close it when the request ends; nothing about the
    credential is shared between callers.
    """

    def __init__(
        self,
        base_url: str,
        api_token: str,
        *,
        timeout: float = 30.0,
        open_status_only: bool = True,
        closed_status_ids: Iterable[str] = (),
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        if not base_url or not api_token:
            raise OpenProjectNotConfigured("OpenProject URL or API token is missing")
        self.base_url = normalize_base_url(base_url)
        self.open_status_only = open_status_only
        self.closed_status_ids = frozenset(str(status_id) for status_id in closed_status_ids)
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=httpx.Timeout(timeout),
            headers={
                "Accept": "application/hal+json",
                "Content-Type": "application/json",
                "Authorization": build_auth_header(api_token),
            },
            transport=transport,
        )

    @classmethod
    def from_settings(
        cls,
        api_token: str,
        settings: Settings | None = None,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "OpenProjectClient":
        settings = settings or get_settings()
        return cls(
            settings.OPENPROJECT_URL,
            api_token,
            timeout=settings.OPENPROJECT_TIMEOUT,
            open_status_only=settings.OPENPROJECT_OPEN_STATUS_ONLY,
            closed_status_ids=settings.OPENPROJECT_CLOSED_STATUS_IDS,
            transport=transport,
        )

    async def __aenter__(self) -> "OpenProjectClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _get(self, path: str, context: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        try:
            response = await self._client.get(path, params=params)
        except httpx.HTTPError as exc:
            logger.warning("OpenProject request failed during %s: %s", context, exc)
            raise UpstreamUnavailable(f"OpenProject request failed: {exc}") from exc
        _raise_for_status(response, context)
        return response.json()

    async def whoami(self) -> Dict[str, Any]:
        return await self._get("/users/me", "identity check")

    async def get_user(self, user_id: str | int) -> Dict[str, Any]:
        return await self._get(f"/users/{user_id}", "user details")

    async def get_project(self, project_id: str | int) -> Dict[str, Any]:
        return await self._get(f"/projects/{project_id}", "project details")

    async def list_projects(self, page_size: int = PROJECTS_PAGE_SIZE) -> List[Dict[str, Any]]:
        """Return every project visible to the caller, following pagination."""

        projects: List[Dict[str, Any]] = []
        page = 1
        while True:
            data = await self._get("/projects", "project list", params={"pageSize": page_size, "offset": page})
            batch = embedded_elements(data)
            if not batch:
                break
            projects.extend(batch)
            total = data.get("total") or 0
            if len(projects) >= total:
                break
            page += 1
        return projects

    async def list_memberships(self, page_size: int) -> List[Membership]:
        data = await self._get("/memberships", "membership list", params={"pageSize": page_size})
        return _parse_elements(embedded_elements(data), Membership.from_hal, "membership list")

    async def list_project_members(self, project_id: str | int) -> List[Dict[str, Any]]:
        """Memberships of one project, each enriched with the member's email."""

        filters = [{"project": {"operator": "=", "values": [str(project_id)]}}]
        data = await self._get(
            "/memberships",
            "project members",
            params={"filters": json.dumps(filters)},
        )
        memberships = _parse_elements(embedded_elements(data), Membership.from_hal, "project members")

        async def fetch_email(user_id: Optional[str]) -> Optional[str]:
            if not user_id:
                return None
            details = await self.get_user(user_id)
            return details.get("email")

        user_ids = [membership.person.id if membership.person else None for membership in memberships]
        emails = await asyncio.gather(*(fetch_email(user_id) for user_id in user_ids), return_exceptions=True)

        members: List[Dict[str, Any]] = []
        for membership, user_id, email in zip(memberships, user_ids, emails):
            if isinstance(email, Exception):
                logger.warning("Failed to fetch details for user %s: %s", user_id, email)
                email = None
            members.append(
                {
                    "id": membership.id,
                    "user": membership.person.name if membership.person else None,
                    "userId": user_id,
                    "roles": membership.role_names,
                    "email": email,
                }
            )
        return members

    async def list_work_packages(
        self, project_id: str | int, filters: Optional[List[Dict[str, Any]]] = None
    ) -> Dict[str, Any]:
        return await self._get(
            f"/projects/{project_id}/work_packages",
            "work package list",
            params={"filters": json.dumps(filters or [])},
        )

    async def open_work_packages(self, project_id: str, person: PersonRef) -> List[WorkPackage]:
        """Open work packages assigned to ``person`` in one project."""

        filters: List[Dict[str, Any]] = [{"assignee": {"operator": "=", "values": [person.id]}}]
        if self.open_status_only:
            filters.append({"status": {"operator": OPEN_STATUS_OPERATOR, "values": []}})
        data = await self.list_work_packages(project_id, filters)
        packages = _parse_elements(embedded_elements(data), WorkPackage.from_hal, "work package list")
        if self.closed_status_ids:
            packages = [
                package
                for package in packages
                if package.status is None or package.status.id not in self.closed_status_ids
            ]
        return packages
