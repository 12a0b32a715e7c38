"""Typed views over the OpenProject HAL resources the bridge consumes."""

from __future__ import annotations

from typing import Any, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field


def href_id(href: Optional[str]) -> Optional[str]:
    """Return the trailing path segment of a HAL href (``/api/v3/users/7`` -> ``7``)."""

    if not href:
        return None
    segment = str(href).rstrip("/").rsplit("/", 1)[-1]
    return segment or None


class Ref(BaseModel):
    """Opaque reference to an OpenProject resource: id, display title and href."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: Optional[str] = None
    href: Optional[str] = None

    @classmethod
    def from_link(cls, link: Optional[Mapping[str, Any]]):
        if not isinstance(link, Mapping):
            return None
        href = link.get("href")
        ref_id = href_id(href)
        if not ref_id:
            return None
        return cls(id=ref_id, name=link.get("title"), href=href)

    def to_link(self, title: Optional[str] = None) -> dict[str, Any]:
        return {"href": self.href, "title": title if title is not None else self.name}


class PersonRef(Ref):
    pass


class ProjectRef(Ref):
    pass


class StatusRef(Ref):
    pass


class Membership(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    person: Optional[PersonRef] = None
    project: Optional[ProjectRef] = None
    role_names: list[str] = Field(default_factory=list)

    @classmethod
    def from_hal(cls, payload: Mapping[str, Any]) -> "Membership":
        links = payload.get("_links") or {}
        roles = links.get("roles") or []
        role_names = [str(role.get("title")) for role in roles if isinstance(role, Mapping) and role.get("title")]
        return cls(
            id=payload["id"],
            person=PersonRef.from_link(links.get("principal")),
            project=ProjectRef.from_link(links.get("project")),
            role_names=role_names,
        )


class WorkPackage(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    subject: str = ""
    assignee: Optional[PersonRef] = None
    status: Optional[StatusRef] = None

    @classmethod
    def from_hal(cls, payload: Mapping[str, Any]) -> "WorkPackage":
        links = payload.get("_links") or {}
        return cls(
            id=payload["id"],
            subject=payload.get("subject") or "",
            assignee=PersonRef.from_link(links.get("assignee")),
            status=StatusRef.from_link(links.get("status")),
        )


def embedded_elements(collection: Optional[Mapping[str, Any]]) -> list[dict[str, Any]]:
    """Pull ``_embedded.elements`` out of a HAL collection, tolerating gaps."""

    if not isinstance(collection, Mapping):
        return []
    embedded = collection.get("_embedded") or {}
    elements = embedded.get("elements") or []
    return [element for element in elements if isinstance(element, Mapping)]
