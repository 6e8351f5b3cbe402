"""Supabase-backed data store and object storage (PostgREST + Storage API over httpx)."""

from __future__ import annotations

import logging
from urllib.parse import quote, unquote

import httpx

from docgen.config import Settings, get_settings
from docgen.errors import StorageFailure
from docgen.integrations.base import Row

logger = logging.getLogger(__name__)

CASES_TABLE = "exchanges"
CONTACTS_TABLE = "contacts"
STAFF_TABLE = "users"
PARTICIPANTS_TABLE = "exchange_participants"
PROPERTIES_TABLE = "properties"
TEMPLATES_TABLE = "document_templates"


def _client(settings: Settings, transport: httpx.BaseTransport | None) -> httpx.Client:
    return httpx.Client(
        base_url=settings.supabase_url.rstrip("/"),
        headers={
            "apikey": settings.supabase_service_key,
            "Authorization": f"Bearer {settings.supabase_service_key}",
        },
        timeout=settings.fetch_timeout,
        transport=transport,
    )


class SupabaseDataStore:
    """Read-only PostgREST queries for the records a document needs."""

    def __init__(self, settings: Settings | None = None, transport: httpx.BaseTransport | None = None):
        self.settings = settings or get_settings()
        self.client = _client(self.settings, transport)

    def _select(self, table: str, column: str, value: str) -> list[Row]:
        resp = self.client.get(f"/rest/v1/{table}", params={"select": "*", column: f"eq.{value}"})
        resp.raise_for_status()
        rows = resp.json()
        return rows if isinstance(rows, list) else []

    def _single(self, table: str, ident: str) -> Row | None:
        rows = self._select(table, "id", ident)
        return rows[0] if rows else None

    def get_case(self, case_id: str) -> Row | None:
        return self._single(CASES_TABLE, case_id)

    def get_contact(self, contact_id: str) -> Row | None:
        return self._single(CONTACTS_TABLE, contact_id)

    def get_staff(self, staff_id: str) -> Row | None:
        return self._single(STAFF_TABLE, staff_id)

    def list_related_parties(self, case_id: str) -> list[Row]:
        return self._select(PARTICIPANTS_TABLE, "exchange_id", case_id)

    def list_properties(self, case_id: str) -> list[Row]:
        return self._select(PROPERTIES_TABLE, "exchange_id", case_id)

    def get_template(self, template_id: str) -> Row | None:
        return self._single(TEMPLATES_TABLE, template_id)


class SupabaseStorage:
    """Object storage for template archives and generated documents."""

    def __init__(self, settings: Settings | None = None, transport: httpx.BaseTransport | None = None):
        self.settings = settings or get_settings()
        self.bucket = self.settings.storage_bucket
        self.client = _client(self.settings, transport)

    @property
    def public_prefix(self) -> str:
        return f"/storage/v1/object/public/{self.bucket}/"

    def public_url(self, path: str) -> str:
        return f"{self.settings.supabase_url.rstrip('/')}{self.public_prefix}{quote(path)}"

    def path_from_public_url(self, url: str) -> str | None:
        _, marker, rest = url.partition(self.public_prefix)
        if not marker or not rest:
            return None
        return unquote(rest.split("?", 1)[0])

    def download(self, path: str) -> bytes:
        try:
            resp = self.client.get(f"/storage/v1/object/{self.bucket}/{quote(path)}")
            resp.raise_for_status()
        except httpx.HTTPError as e:
            raise StorageFailure(f"download of {path} failed: {e}", step="download") from e
        return resp.content

    def upload(self, path: str, data: bytes, content_type: str) -> str:
        try:
            resp = self.client.post(
                f"/storage/v1/object/{self.bucket}/{quote(path)}",
                content=data,
                headers={"Content-Type": content_type, "x-upsert": "false"},
            )
            resp.raise_for_status()
        except httpx.HTTPError as e:
            raise StorageFailure(f"upload of {path} failed: {e}", step="persist") from e
        logger.info("Uploaded %s (%d bytes)", path, len(data))
        return self.public_url(path)
