"""Record aggregation: assemble the RecordGraph for one case.

The case row is mandatory. Everything else (primary party, coordinator,
related parties, properties) is fetched concurrently and is best-effort:
a failed or slow fetch leaves that slice empty.
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from typing import Any, Callable

from pydantic import ValidationError

from docgen.errors import CaseNotFound
from docgen.integrations.base import DataStore
from docgen.models import Contact, ExchangeCase, PropertyRecord, RecordGraph, RelatedParty, StaffMember

logger = logging.getLogger(__name__)

# Practice-management payload keys -> Contact fields.
LEGACY_CONTACT_KEYS = {
    "Contact.FirstName": "first_name",
    "Contact.LastName": "last_name",
    "Contact.Email": "email",
    "Contact.HomeNumber": "phone",
    "Contact.Street1": "street1",
    "Contact.City": "city",
    "Contact.ProvinceState": "state",
    "Contact.ZipPostalCode": "zip_postal_code",
}


def split_name(full: str) -> tuple[str, str]:
    parts = full.split()
    if not parts:
        return "", ""
    return parts[0], " ".join(parts[1:])


def synthesize_primary_party(case: ExchangeCase) -> Contact | None:
    """Build a client from case columns when no contact record is linked."""
    first = last = ""
    if case.buyer_1_name:
        first, last = split_name(case.buyer_1_name)
    elif case.client_vesting:
        first, last = split_name(case.client_vesting)
    elif case.name or case.exchange_name:
        # Case names follow "Last, First - Property" or "First Last - Property"
        name_part = (case.name or case.exchange_name).split(" - ")[0]
        if "," in name_part:
            last, _, first = (p.strip() for p in name_part.partition(","))
        else:
            first, last = split_name(name_part)

    contact = Contact(
        first_name=first or None,
        last_name=last or None,
        email=case.client_email,
        phone=case.client_phone,
        street1=case.relinquished_property_address,
        city=case.relinquished_property_city,
        state=case.relinquished_property_state,
        zip_postal_code=case.relinquished_property_zip,
    )
    if not any(contact.model_dump(exclude_none=True).values()):
        return None
    return contact


def apply_legacy_payload(case: ExchangeCase, contact: Contact | None) -> Contact | None:
    """Overlay Contact.* values from the practice-management payload."""
    payload = case.legacy_payload()
    updates = {
        field: str(payload[key]).strip()
        for key, field in LEGACY_CONTACT_KEYS.items()
        if payload.get(key) not in (None, "")
    }
    if not updates:
        return contact
    return (contact or Contact()).model_copy(update=updates)


class RecordAggregator:
    """Fetch and assemble everything the resolver needs for one case."""

    def __init__(self, store: DataStore, timeout: float = 10.0, max_workers: int = 4):
        self.store = store
        self.timeout = timeout
        self.max_workers = max_workers

    def aggregate(self, case_id: str) -> RecordGraph:
        row = self.store.get_case(case_id)
        if not row:
            raise CaseNotFound(f"case {case_id} not found", case_id=str(case_id))
        case = ExchangeCase.model_validate(row)

        fetches: dict[str, Callable[[], Any]] = {
            "primary_party": lambda: self._one(self.store.get_contact, case.client_id, Contact),
            "assigned_staff": lambda: self._one(self.store.get_staff, case.coordinator_id, StaffMember),
            "related_parties": lambda: self._many(self.store.list_related_parties, case_id, RelatedParty),
            "properties": lambda: self._many(self.store.list_properties, case_id, PropertyRecord),
        }
        results = self._gather(case_id, fetches)

        primary = results.get("primary_party") or synthesize_primary_party(case)
        primary = apply_legacy_payload(case, primary)

        graph = RecordGraph(
            case=case,
            primary_party=primary,
            assigned_staff=results.get("assigned_staff"),
            related_parties=results.get("related_parties") or [],
            properties=results.get("properties") or [],
        )
        logger.info(
            "Aggregated case %s: client=%s coordinator=%s related=%d properties=%d",
            case_id,
            bool(graph.primary_party),
            bool(graph.assigned_staff),
            len(graph.related_parties),
            len(graph.properties),
        )
        return graph

    def _gather(self, case_id: str, fetches: dict[str, Callable[[], Any]]) -> dict[str, Any]:
        """Run the secondary fetches under one deadline; failures become empty slices."""
        pool = ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="docgen-fetch")
        futures: dict[str, Future] = {name: pool.submit(fn) for name, fn in fetches.items()}
        deadline = time.monotonic() + self.timeout
        results: dict[str, Any] = {}
        try:
            for name, future in futures.items():
                remaining = max(0.0, deadline - time.monotonic())
                try:
                    results[name] = future.result(timeout=remaining)
                except FutureTimeout:
                    future.cancel()
                    logger.warning("Fetch of %s for case %s timed out; leaving it empty", name, case_id)
                except Exception as e:
                    logger.warning("Fetch of %s for case %s failed; leaving it empty: %s", name, case_id, e)
        finally:
            pool.shutdown(wait=False, cancel_futures=True)
        return results

    @staticmethod
    def _one(fetch, ident, model):
        if ident in (None, ""):
            return None
        row = fetch(str(ident))
        return model.model_validate(row) if row else None

    @staticmethod
    def _many(fetch, case_id, model) -> list:
        items = []
        for row in fetch(str(case_id)) or []:
            try:
                items.append(model.model_validate(row))
            except ValidationError as e:
                logger.warning("Skipping malformed %s row: %s", model.__name__, e)
        return items
