from __future__ import annotations

import json
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, status

from ..core.config import get_settings
from ..deps.openproject import get_openproject_client
from ..services.availability import AggregatedRecord, AggregationResult, aggregate_availability
from ..services.openproject import OpenProjectClient

router = APIRouter(prefix="/api", tags=["openproject"])


def _record_to_hal(record: AggregatedRecord) -> dict[str, Any]:
    return {
        "_type": "Membership",
        "id": record.membership_id,
        "availability": record.availability,
        "_links": {
            "principal": record.person.to_link(),
            "project": record.project.to_link(title=record.project_label),
            "roles": [{"title": role} for role in record.role_names],
        },
    }


def _result_to_hal(result: AggregationResult) -> dict[str, Any]:
    elements = [_record_to_hal(record) for record in result.records]
    return {
        "_type": "Collection",
        "total": len(elements),
        "count": len(elements),
        # Partial data must not be read as authoritative by the dashboard.
        "partial": result.timed_out or bool(result.failures),
        "timedOut": result.timed_out,
        "unresolvedPersons": result.unresolved_person_ids,
        "failedLookups": len(result.failures),
        "_embedded": {"elements": elements},
    }


def _parse_filters(raw: str | None) -> list[dict[str, Any]]:
    if not raw:
        return []
    try:
        filters = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise HTTPException(status.HTTP_422_UNPROCESSABLE_ENTITY, "filters must be a JSON array") from exc
    if not isinstance(filters, list):
        raise HTTPException(status.HTTP_422_UNPROCESSABLE_ENTITY, "filters must be a JSON array")
    return filters


@router.get("/projects/ping")
async def ping(client: OpenProjectClient = Depends(get_openproject_client)):
    me = await client.whoami()
    return {"ok": True, "me": {"id": me.get("id"), "name": me.get("name"), "email": me.get("email")}}


@router.get("/projects/projects")
async def list_projects(client: OpenProjectClient = Depends(get_openproject_client)):
    return {"ok": True, "projects": await client.list_projects()}


@router.get("/projects/projects/{project_id}")
async def get_project(project_id: str, client: OpenProjectClient = Depends(get_openproject_client)):
    return {"ok": True, "project": await client.get_project(project_id)}


@router.get("/projects/projects/{project_id}/members")
async def list_project_members(project_id: str, client: OpenProjectClient = Depends(get_openproject_client)):
    return {"ok": True, "members": await client.list_project_members(project_id)}


@router.get("/projects/projects/{project_id}/work-packages")
async def list_work_packages(
    project_id: str,
    filters: str | None = Query(default=None),
    client: OpenProjectClient = Depends(get_openproject_client),
):
    data = await client.list_work_packages(project_id, _parse_filters(filters))
    return {"ok": True, **data}


@router.get("/memberships", summary="Collaborators with their current availability")
async def list_memberships(
    page_size: int | None = Query(default=None, alias="pageSize", ge=1, le=1000),
    client: OpenProjectClient = Depends(get_openproject_client),
):
    settings = get_settings()
    # A failure here is fatal and surfaces through the OpenProject error handler.
    memberships = await client.list_memberships(page_size or settings.MEMBERSHIP_PAGE_SIZE)
    result = await aggregate_availability(
        memberships,
        client.open_work_packages,
        concurrency=settings.AGGREGATION_CONCURRENCY,
        timeout=settings.AGGREGATION_TIMEOUT_SECONDS,
    )
    return _result_to_hal(result)
