"""Boundary contracts for the hosted data store and object storage."""

from __future__ import annotations

from typing import Any, Protocol

Row = dict[str, Any]


class DataStore(Protocol):
    """Read-only queries used by document generation."""

    def get_case(self, case_id: str) -> Row | None: ...

    def get_contact(self, contact_id: str) -> Row | None: ...

    def get_staff(self, staff_id: str) -> Row | None: ...

    def list_related_parties(self, case_id: str) -> list[Row]: ...

    def list_properties(self, case_id: str) -> list[Row]: ...

    def get_template(self, template_id: str) -> Row | None: ...


class ObjectStore(Protocol):

    def download(self, path: str) -> bytes: ...

    def upload(self, path: str, data: bytes, content_type: str) -> str:
        """Store ``data`` at ``path`` and return a public reference to it."""
        ...

    def path_from_public_url(self, url: str) -> str | None:
        """Map a public URL produced by this store back to a storage path."""
        ...
