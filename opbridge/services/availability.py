"""Collaborator availability derived from OpenProject memberships.

A person is *Ocupado* when at least one of the projects they belong to has an
open work package assigned to them, and *Disponible* otherwise. Memberships
arrive one row per (person, project); the aggregation collapses them into one
record per person, keeping the order in which persons first appear.

Lookups for every (person, project) pair run concurrently under a semaphore.
Each lookup is isolated: a failure counts as "no open work" for that pair and
is reported in ``AggregationResult.failures``. When the optional timeout
expires the outstanding lookups are cancelled and the result is flagged
``timed_out``; persons without a confirmed busy project fall back to
*Disponible*.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Iterable, Literal, Sequence

from pydantic import BaseModel, Field

from ..schemas.openproject import Membership, PersonRef, ProjectRef, WorkPackage

logger = logging.getLogger(__name__)

AVAILABLE = "Disponible"
BUSY = "Ocupado"
PROJECT_LABEL_SEPARATOR = ", "
DEFAULT_CONCURRENCY = 8

OpenWorkPackageLookup = Callable[[str, PersonRef], Awaitable[Sequence[WorkPackage]]]


@dataclass
class PersonGroup:
    """All memberships of one person, in first-seen order."""

    person: PersonRef
    first_membership: Membership
    projects: dict[str, ProjectRef] = field(default_factory=dict)
    role_names: list[str] = field(default_factory=list)

    @property
    def original_project(self) -> ProjectRef:
        return self.first_membership.project or next(iter(self.projects.values()))


class AggregatedRecord(BaseModel):
    membership_id: int
    person: PersonRef
    project: ProjectRef
    role_names: list[str] = Field(default_factory=list)
    availability: Literal["Disponible", "Ocupado"]
    project_label: str


class LookupFailure(BaseModel):
    person_id: str
    project_id: str
    message: str


class AggregationResult(BaseModel):
    records: list[AggregatedRecord] = Field(default_factory=list)
    timed_out: bool = False
    unresolved_person_ids: list[str] = Field(default_factory=list)
    failures: list[LookupFailure] = Field(default_factory=list)

    @property
    def complete(self) -> bool:
        return not self.timed_out


def group_memberships(memberships: Iterable[Membership]) -> list[PersonGroup]:
    """Collapse membership rows into one group per person.

    Memberships without a person are skipped. A project is only recorded when
    it has both an id and a title, and a person left without any project is
    dropped.
    """

    groups: dict[str, PersonGroup] = {}
    for membership in memberships:
        person = membership.person
        if person is None:
            continue
        group = groups.get(person.id)
        if group is None:
            group = PersonGroup(person=person, first_membership=membership)
            groups[person.id] = group
        project = membership.project
        if project is not None and project.name and project.id not in group.projects:
            group.projects[project.id] = project
        for role in membership.role_names:
            if role not in group.role_names:
                group.role_names.append(role)
    return [group for group in groups.values() if group.projects]


async def aggregate_availability(
    memberships: Iterable[Membership],
    lookup: OpenWorkPackageLookup,
    *,
    concurrency: int = DEFAULT_CONCURRENCY,
    timeout: float | None = None,
) -> AggregationResult:
    groups = group_memberships(memberships)
    if not groups:
        return AggregationResult()

    semaphore = asyncio.Semaphore(max(1, concurrency))
    # Keyed by (person id, project id); completion order is irrelevant.
    outcomes: dict[tuple[str, str], bool] = {}
    failures: dict[tuple[str, str], LookupFailure] = {}

    async def check(person: PersonRef, project: ProjectRef) -> None:
        key = (person.id, project.id)
        async with semaphore:
            try:
                packages = await lookup(project.id, person)
                # A non-iterable result such as None is recorded as a failed lookup.
                busy = len(list(packages)) > 0
            except Exception as exc:
                logger.warning(
                    "Work package lookup failed for person %s in project %s: %s",
                    person.id,
                    project.id,
                    exc,
                    extra={"extra_data": {"person_id": person.id, "project_id": project.id}},
                )
                failures[key] = LookupFailure(person_id=person.id, project_id=project.id, message=str(exc) or type(exc).__name__)
                outcomes[key] = False
                return
        outcomes[key] = busy

    pending = asyncio.gather(*(check(group.person, project) for group in groups for project in group.projects.values()))
    timed_out = False
    try:
        if timeout is None:
            await pending
        else:
            await asyncio.wait_for(pending, timeout=timeout)
    except asyncio.TimeoutError:
        timed_out = True
        logger.warning(
            "Availability aggregation timed out after %ss",
            timeout,
            extra={"extra_data": {"resolved_lookups": len(outcomes)}},
        )

    records: list[AggregatedRecord] = []
    unresolved: list[str] = []
    for group in groups:
        active_projects: list[str] = []
        resolved = True
        for project in group.projects.values():
            busy = outcomes.get((group.person.id, project.id))
            if busy is None:
                resolved = False
            elif busy:
                active_projects.append(project.name or project.id)
        if not resolved:
            unresolved.append(group.person.id)
        original = group.original_project
        records.append(
            AggregatedRecord(
                membership_id=group.first_membership.id,
                person=group.person,
                project=original,
                role_names=list(group.role_names),
                availability=BUSY if active_projects else AVAILABLE,
                project_label=PROJECT_LABEL_SEPARATOR.join(active_projects) if active_projects else (original.name or original.id),
            )
        )

    ordered_failures = [failures[key] for key in sorted(failures, key=_pair_order(groups))]
    logger.info(
        "Aggregated availability",
        extra={
            "extra_data": {
                "persons": len(records),
                "busy": sum(1 for record in records if record.availability == BUSY),
                "failed_lookups": len(ordered_failures),
                "timed_out": timed_out,
            }
        },
    )
    return AggregationResult(
        records=records,
        timed_out=timed_out,
        unresolved_person_ids=unresolved,
        failures=ordered_failures,
    )


def _pair_order(groups: Sequence[PersonGroup]) -> Callable[[tuple[str, str]], int]:
    positions: dict[tuple[str, str], int] = {}
    for group in groups:
        for project_id in group.projects:
            positions[(group.person.id, project_id)] = len(positions)
    return lambda key: positions.get(key, len(positions))
