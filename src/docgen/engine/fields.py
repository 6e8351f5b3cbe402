"""Field vocabulary: exact aliases, heuristic rules, and fallback labels.

Template authors have used at least four naming schemes for the same data
(``Client.FirstName``, ``Contact.FirstName``, ``Matter.Client Vesting`` ...).
This module is the single canonical table for all of them:

* ``EXACT_FIELDS`` - every documented key, looked up verbatim.
* ``HEURISTIC_RULES`` - ordered substring rules for keys that miss the
  exact table. First matching rule wins; order is most-specific first.
* ``FALLBACK_VALUES`` - "<Label> Not Available" text for required fields.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable

from docgen.engine.formatting import display, format_currency, format_date, format_datetime, parse_when
from docgen.engine.scanner import normalize_key
from docgen.models import Contact, PartyRole, PropertyRecord, RecordGraph, RelatedParty, StaffMember

ENGINE_VERSION = "2.0"
DEFAULT_QI_COMPANY = "Peak 1031 Exchange"

STATUS_PROGRESS = {
    "pending": "10%",
    "started": "25%",
    "45d": "50%",
    "180d": "75%",
    "completed": "100%",
}


def first(*values: Any) -> str | None:
    """First value that displays as a non-empty string."""
    for value in values:
        text = display(value)
        if text is not None:
            return text
    return None


@dataclass
class FieldContext:
    """Read-only view over a RecordGraph used by field getters."""

    graph: RecordGraph
    now: datetime
    qi_company: str = DEFAULT_QI_COMPANY

    @property
    def case(self):
        return self.graph.case

    @property
    def client(self) -> Contact:
        return self.graph.primary_party or Contact()

    @property
    def staff(self) -> StaffMember:
        return self.graph.assigned_staff or StaffMember()

    @property
    def rel(self) -> PropertyRecord:
        return self.graph.first_property("relinquished") or PropertyRecord()

    @property
    def rep(self) -> PropertyRecord:
        return self.graph.first_property("replacement") or PropertyRecord()

    def party(self, role: PartyRole) -> RelatedParty:
        parties = self.graph.parties_with_role(role)
        return parties[0] if parties else RelatedParty(role=role)


# ---------------------------------------------------------------------------
# Computed exchange values
# ---------------------------------------------------------------------------

def _naive(value: Any) -> datetime | None:
    when = parse_when(value)
    return when.replace(tzinfo=None) if when else None


def exchange_timeline(ctx: FieldContext) -> str | None:
    start = _naive(ctx.case.start_date)
    end = _naive(ctx.case.completion_deadline)
    if not start or not end:
        return None
    return f"{math.ceil((end - start).total_seconds() / 86400)} days"


def days_remaining(ctx: FieldContext) -> str | None:
    deadline = _naive(ctx.case.completion_deadline)
    if not deadline:
        return None
    days = (deadline.date() - ctx.now.date()).days
    return f"{days} days" if days > 0 else "Expired"


def exchange_progress(ctx: FieldContext) -> str | None:
    status = first(ctx.case.status, ctx.case.new_status)
    if not status:
        return None
    return STATUS_PROGRESS.get(status.lower(), "0%")


def exchange_complete(ctx: FieldContext) -> str | None:
    status = first(ctx.case.status, ctx.case.new_status)
    if not status:
        return None
    return "Yes" if status.lower() == "completed" else "No"


# ---------------------------------------------------------------------------
# Exact-structure table
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class FieldSpec:
    key: str
    label: str
    getter: Callable[[FieldContext], Any]


def _f(key: str, label: str, getter: Callable[[FieldContext], Any]) -> FieldSpec:
    return FieldSpec(key, label, getter)


def _settlement_fields(side: str, prefix: str, label: str) -> list[FieldSpec]:
    def column(name: str) -> Callable[[FieldContext], Any]:
        return lambda c: getattr(c.case, f"{side}_{name}")

    return [
        _f(f"{prefix} settlement agent.firstname", f"{label} Settlement Agent First Name",
           column("settlement_agent_first_name")),
        _f(f"{prefix} settlement agent.lastname", f"{label} Settlement Agent Last Name",
           column("settlement_agent_last_name")),
        _f(f"{prefix} settlement agent.escrow company name", f"{label} Escrow Company",
           column("escrow_company")),
        _f(f"{prefix} settlement agent.street1", f"{label} Settlement Agent Street", column("settlement_street1")),
        _f(f"{prefix} settlement agent.street2", f"{label} Settlement Agent Street 2", column("settlement_street2")),
        _f(f"{prefix} settlement agent.city", f"{label} Settlement Agent City", column("settlement_city")),
        _f(f"{prefix} settlement agent.provincestate", f"{label} Settlement Agent State", column("settlement_state")),
        _f(f"{prefix} settlement agent.zippostalcode", f"{label} Settlement Agent Zip", column("settlement_zip")),
    ]


def _party_fields(role: PartyRole, label: str) -> list[FieldSpec]:
    prefix = role.value.replace("_", "")
    return [
        _f(f"{prefix}.name", f"{label} Name", lambda c: c.party(role).full_name),
        _f(f"{prefix}.firstname", f"{label} First Name", lambda c: c.party(role).first_name),
        _f(f"{prefix}.lastname", f"{label} Last Name", lambda c: c.party(role).last_name),
        _f(f"{prefix}.company", f"{label} Company", lambda c: c.party(role).company),
        _f(f"{prefix}.email", f"{label} Email", lambda c: c.party(role).email),
        _f(f"{prefix}.phone", f"{label} Phone", lambda c: c.party(role).phone),
    ]


EXACT_FIELDS: tuple[FieldSpec, ...] = (
    # Exchange
    _f("exchange.id", "Exchange ID", lambda c: c.case.id),
    _f("exchange.number", "Exchange Number",
       lambda c: first(c.case.exchange_number, c.case.matter_number, c.case.pp_matter_number)),
    _f("exchange.name", "Exchange Name", lambda c: first(c.case.exchange_name, c.case.name)),
    _f("exchange.type", "Exchange Type", lambda c: c.case.exchange_type),
    _f("exchange.status", "Exchange Status", lambda c: first(c.case.status, c.case.new_status)),
    _f("exchange.value", "Exchange Value", lambda c: format_currency(c.case.exchange_value)),
    _f("exchange.category", "Exchange Category", lambda c: first(c.case.category, "Standard")),
    _f("exchange.timeline", "Exchange Timeline", exchange_timeline),
    _f("exchange.daysremaining", "Days Remaining", days_remaining),
    _f("exchange.progress", "Exchange Progress", exchange_progress),
    _f("exchange.iscomplete", "Exchange Completion", exchange_complete),
    # Client
    _f("client.name", "Client Name",
       lambda c: first(c.client.full_name, c.case.client_vesting, c.case.buyer_1_name)),
    _f("client.firstname", "Client First Name", lambda c: c.client.first_name),
    _f("client.lastname", "Client Last Name", lambda c: c.client.last_name),
    _f("client.email", "Client Email", lambda c: c.client.email),
    _f("client.phone", "Client Phone", lambda c: c.client.phone),
    _f("client.company", "Client Company", lambda c: c.client.company),
    _f("client.address", "Client Address", lambda c: c.client.street1),
    _f("client.city", "Client City", lambda c: c.client.city),
    _f("client.state", "Client State", lambda c: c.client.state),
    _f("client.zipcode", "Client Zip Code", lambda c: c.client.zip_postal_code),
    # Property
    _f("property.address", "Property Address",
       lambda c: first(c.case.property_address, c.rel.address, c.case.relinquished_property_address)),
    _f("property.relinquishedaddress", "Relinquished Property Address",
       lambda c: first(c.rel.address, c.case.relinquished_property_address)),
    _f("property.replacementaddress", "Replacement Property Address",
       lambda c: first(c.rep.address, c.case.replacement_property_address)),
    _f("property.saleprice", "Sale Price",
       lambda c: first(format_currency(c.case.relinquished_sale_price),
                       format_currency(c.case.relinquished_value), format_currency(c.rel.value))),
    _f("property.replacementvalue", "Replacement Value",
       lambda c: first(format_currency(c.case.replacement_value), format_currency(c.rep.value))),
    _f("property.type", "Property Type", lambda c: c.case.property_type),
    # Financial
    _f("financial.exchangevalue", "Exchange Value", lambda c: format_currency(c.case.exchange_value)),
    _f("financial.relinquishedvalue", "Relinquished Value",
       lambda c: first(format_currency(c.case.relinquished_value), format_currency(c.rel.value))),
    _f("financial.replacementvalue", "Replacement Value",
       lambda c: first(format_currency(c.case.replacement_value), format_currency(c.rep.value))),
    _f("financial.saleprice", "Sale Price", lambda c: format_currency(c.case.relinquished_sale_price)),
    _f("financial.netproceeds", "Net Proceeds", lambda c: format_currency(c.case.net_proceeds)),
    _f("financial.fee", "Exchange Fee", lambda c: format_currency(c.case.fee)),
    # Dates
    _f("date.start", "Start Date", lambda c: format_date(c.case.start_date)),
    _f("date.identificationdeadline", "Identification Deadline",
       lambda c: format_date(c.case.identification_deadline)),
    _f("date.completiondeadline", "Completion Deadline", lambda c: format_date(c.case.completion_deadline)),
    _f("date.relinquishedclosing", "Relinquished Closing Date",
       lambda c: first(format_date(c.case.relinquished_closing_date), format_date(c.rel.closing_date))),
    _f("date.replacementclosing", "Replacement Closing Date", lambda c: format_date(c.rep.closing_date)),
    _f("date.current", "Current Date", lambda c: format_date(c.now)),
    _f("date.today", "Current Date", lambda c: format_date(c.now)),
    _f("date.creation", "Creation Date", lambda c: format_date(c.case.created_at)),
    _f("date.lastupdated", "Last Updated Date", lambda c: format_date(c.case.updated_at)),
    # Coordinator (templates also call the coordinator "User")
    _f("coordinator.name", "Coordinator Name", lambda c: c.staff.full_name),
    _f("coordinator.firstname", "Coordinator First Name", lambda c: c.staff.first_name),
    _f("coordinator.lastname", "Coordinator Last Name", lambda c: c.staff.last_name),
    _f("coordinator.email", "Coordinator Email", lambda c: c.staff.email),
    _f("coordinator.phone", "Coordinator Phone", lambda c: c.staff.phone),
    _f("coordinator.title", "Coordinator Title", lambda c: c.staff.title),
    _f("user.firstname", "Coordinator First Name", lambda c: c.staff.first_name),
    _f("user.lastname", "Coordinator Last Name", lambda c: c.staff.last_name),
    _f("user.title", "Coordinator Title", lambda c: c.staff.title),
    _f("user.email", "Coordinator Email", lambda c: c.staff.email),
    _f("user.phone", "Coordinator Phone", lambda c: c.staff.phone),
    # Qualified intermediary
    _f("qi.company", "QI Company", lambda c: first(c.case.qi_company, c.qi_company)),
    _f("qi.name", "QI Name", lambda c: first(c.case.qi_name, c.case.qi_company, c.qi_company)),
    _f("qi.address", "QI Address", lambda c: c.case.qi_address),
    _f("qi.phone", "QI Phone", lambda c: c.case.qi_phone),
    _f("qi.email", "QI Email", lambda c: c.case.qi_email),
    # System
    _f("system.priority", "Priority", lambda c: c.case.priority),
    _f("system.risklevel", "Risk Level", lambda c: c.case.risk_level),
    _f("system.notes", "Notes", lambda c: c.case.notes),
    _f("system.currentdate", "Current Date", lambda c: format_date(c.now)),
    _f("system.currentdatetime", "Current Date and Time", lambda c: format_datetime(c.now)),
    _f("system.generatedby", "Generated By", lambda c: first(c.staff.email, "system")),
    _f("system.version", "Version", lambda c: ENGINE_VERSION),
    # Matter (practice-management naming)
    _f("matter.number", "Matter Number",
       lambda c: first(c.case.matter_number, c.case.exchange_number, c.case.pp_matter_number, c.case.id)),
    _f("matter.name", "Matter Name", lambda c: first(c.case.matter_name, c.case.exchange_name, c.case.name)),
    _f("matter.type", "Matter Type", lambda c: first(c.case.matter_type, c.case.exchange_type)),
    _f("matter.client vesting", "Client Vesting", lambda c: first(c.case.client_vesting, c.client.full_name)),
    _f("matter.client 1 signatory title", "Client 1 Signatory Title",
       lambda c: first(c.case.client1_signatory_title, "Exchanger")),
    _f("matter.client 2 name", "Client 2 Name",
       lambda c: first(c.case.client2_name, c.party(PartyRole.CO_OWNER).full_name)),
    _f("matter.client 2 signatory title", "Client 2 Signatory Title", lambda c: c.case.client2_signatory_title),
    _f("matter.rel property address", "Relinquished Property Address",
       lambda c: first(c.case.relinquished_property_address, c.rel.address)),
    _f("matter.rel escrow number", "Relinquished Escrow Number",
       lambda c: first(c.case.rel_escrow_number, c.rel.escrow_number)),
    *_settlement_fields("rel", "matter.rel", "Relinquished"),
    _f("matter.rep 1 property address", "Replacement Property Address",
       lambda c: first(c.case.replacement_property_address, c.rep.address)),
    _f("matter.rep 1 escrow number", "Replacement Escrow Number",
       lambda c: first(c.case.rep_escrow_number, c.rep.escrow_number)),
    *_settlement_fields("rep", "matter.rep 1", "Replacement"),
    # Related parties, one set per role
    *_party_fields(PartyRole.CO_OWNER, "Co-Owner"),
    *_party_fields(PartyRole.TRUSTEE, "Trustee"),
    *_party_fields(PartyRole.BENEFICIARY, "Beneficiary"),
    *_party_fields(PartyRole.PARTNER, "Partner"),
    *_party_fields(PartyRole.ATTORNEY, "Attorney"),
    *_party_fields(PartyRole.REALTOR, "Realtor"),
    *_party_fields(PartyRole.TITLE_COMPANY, "Title Company"),
    *_party_fields(PartyRole.ACCOUNTANT, "Accountant"),
)


def build_exact_table(graph: RecordGraph, now: datetime | None = None,
                      qi_company: str = DEFAULT_QI_COMPANY) -> dict[str, str]:
    """Map every known key with a value in ``graph`` to its display string.

    Keys whose underlying data is missing are left out, so they fall
    through to the heuristic, fallback and unresolved tiers.
    """
    ctx = FieldContext(graph=graph, now=now or datetime.now(), qi_company=qi_company)
    table: dict[str, str] = {}
    for spec in EXACT_FIELDS:
        value = display(spec.getter(ctx))
        if value is not None:
            table[spec.key] = value

    # Raw practice-management keys ("Contact.FirstName") never displace built-ins
    for raw_key, raw_value in graph.case.legacy_payload().items():
        key = normalize_key(str(raw_key))
        value = display(raw_value)
        if key and value is not None and key not in table:
            table[key] = value
    return table


# ---------------------------------------------------------------------------
# Heuristic rules
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class HeuristicRule:
    name: str
    predicate: Callable[[str], bool]
    resolve: Callable[[FieldContext], Any]
    label: str
    aliases: tuple[str, ...] = ()


def any_of(*needles: str) -> Callable[[str], bool]:
    return lambda key: any(n in key for n in needles)


def all_of(*needles: str) -> Callable[[str], bool]:
    return lambda key: all(n in key for n in needles)


def _rule(name: str, needles: tuple[str, ...], resolve, label: str, mode=any_of) -> HeuristicRule:
    return HeuristicRule(name, mode(*needles), resolve, label, needles if mode is any_of else ())


def _is_replacement_address(key: str) -> bool:
    return ("rep" in key or "replacement" in key) and "address" in key


def _is_bare_coordinator(key: str) -> bool:
    return "coordinator" in key and "." not in key


def _settlement_rules(side: str, label: str) -> list[HeuristicRule]:
    def column(name: str):
        return lambda c: getattr(c.case, f"{side}_{name}")

    return [
        _rule(f"{side} settlement first name", (side, "settlement", "firstname"),
              column("settlement_agent_first_name"), f"{label} Settlement Agent First Name", all_of),
        _rule(f"{side} settlement last name", (side, "settlement", "lastname"),
              column("settlement_agent_last_name"), f"{label} Settlement Agent Last Name", all_of),
        _rule(f"{side} settlement company", (side, "settlement", "company"),
              column("escrow_company"), f"{label} Escrow Company", all_of),
        _rule(f"{side} settlement street", (side, "settlement", "street1"),
              column("settlement_street1"), f"{label} Settlement Agent Street", all_of),
        _rule(f"{side} settlement city", (side, "settlement", "city"),
              column("settlement_city"), f"{label} Settlement Agent City", all_of),
        _rule(f"{side} settlement state", (side, "settlement", "state"),
              column("settlement_state"), f"{label} Settlement Agent State", all_of),
        _rule(f"{side} settlement zip", (side, "settlement", "zip"),
              column("settlement_zip"), f"{label} Settlement Agent Zip", all_of),
    ]


HEURISTIC_RULES: tuple[HeuristicRule, ...] = (
    *_settlement_rules("rel", "Relinquished"),
    *_settlement_rules("rep", "Replacement"),
    _rule("client vesting", ("matter.client vesting", "client.vesting"),
          lambda c: first(c.case.client_vesting, c.client.full_name), "Client Vesting"),
    _rule("case number", ("matter.number", "exchange.number"),
          lambda c: first(c.case.exchange_number, c.case.matter_number, c.case.pp_matter_number,
                          c.case.pp_matter_id, c.case.id), "Exchange Number"),
    _rule("case name", ("matter.name", "exchange.name"),
          lambda c: first(c.case.name, c.case.exchange_name, c.case.matter_name), "Exchange Name"),
    _rule("second client name", ("client 2 name", "client2.name"),
          lambda c: first(c.case.client2_name, c.party(PartyRole.CO_OWNER).full_name), "Client 2 Name"),
    _rule("second signatory address", ("2nd signatory", "address"),
          lambda c: c.case.client2_address, "Second Signatory Address", all_of),
    _rule("second signatory phone", ("2nd signatory", "phone"),
          lambda c: c.case.client2_phone, "Second Signatory Phone", all_of),
    _rule("second signatory email", ("2nd signatory", "email"),
          lambda c: c.case.client2_email, "Second Signatory Email", all_of),
    _rule("second signatory title", ("client 2", "signatory title"),
          lambda c: c.case.client2_signatory_title, "Client 2 Signatory Title", all_of),
    _rule("client name", ("matter.client", "client.name", "client.fullname", "contact.name", "contact.fullname"),
          lambda c: first(c.client.full_name, c.case.client_vesting, c.case.buyer_1_name), "Client Name"),
    _rule("client first name", ("contact.firstname", "client.firstname"),
          lambda c: c.client.first_name, "Client First Name"),
    _rule("client last name", ("contact.lastname", "client.lastname"),
          lambda c: c.client.last_name, "Client Last Name"),
    _rule("client email", ("contact.email", "client.email"),
          lambda c: c.client.email, "Client Email"),
    _rule("client phone", ("contact.phone", "client.phone", "contact.homenumber", "contact.mobile"),
          lambda c: c.client.phone, "Client Phone"),
    _rule("exchange fee", ("contact.fee", "matter.fee", "exchange.fee"),
          lambda c: format_currency(c.case.fee), "Exchange Fee"),
    _rule("client street", ("contact.street", "contact.address", "client.street"),
          lambda c: c.client.street1, "Client Address"),
    _rule("client city", ("contact.city",), lambda c: c.client.city, "Client City"),
    _rule("client state", ("contact.state", "contact.provincestate"), lambda c: c.client.state, "Client State"),
    _rule("client zip", ("contact.zip", "client.zip"), lambda c: c.client.zip_postal_code, "Client Zip Code"),
    _rule("exchange value", ("exchange.value", "matter.value"),
          lambda c: format_currency(c.case.exchange_value), "Exchange Value"),
    _rule("exchange status", ("exchange.status", "matter.status"),
          lambda c: first(c.case.status, c.case.new_status), "Exchange Status"),
    _rule("exchange type", ("exchange.type", "matter.type"),
          lambda c: first(c.case.exchange_type, c.case.matter_type), "Exchange Type"),
    _rule("relinquished escrow number", ("rel", "escrow"),
          lambda c: first(c.case.rel_escrow_number, c.rel.escrow_number), "Relinquished Escrow Number", all_of),
    _rule("replacement escrow number", ("rep", "escrow"),
          lambda c: first(c.case.rep_escrow_number, c.rep.escrow_number), "Replacement Escrow Number", all_of),
    _rule("rel property address", ("rel", "property", "address"),
          lambda c: first(c.case.relinquished_property_address, c.rel.address),
          "Relinquished Property Address", all_of),
    _rule("relinquished address", ("relinquished", "address"),
          lambda c: first(c.rel.address, c.case.relinquished_property_address),
          "Relinquished Property Address", all_of),
    HeuristicRule("replacement address", _is_replacement_address,
                  lambda c: first(c.rep.address, c.case.replacement_property_address),
                  "Replacement Property Address"),
    _rule("coordinator first name", ("user.firstname", "coordinator.firstname"),
          lambda c: c.staff.first_name, "Coordinator First Name"),
    _rule("coordinator last name", ("user.lastname", "coordinator.lastname"),
          lambda c: c.staff.last_name, "Coordinator Last Name"),
    _rule("coordinator title", ("user.title", "coordinator.title"),
          lambda c: first(c.staff.title, "Exchange Coordinator"), "Coordinator Title"),
    _rule("coordinator email", ("user.email", "coordinator.email"),
          lambda c: c.staff.email, "Coordinator Email"),
    _rule("coordinator phone", ("user.phone", "coordinator.phone"),
          lambda c: c.staff.phone, "Coordinator Phone"),
    _rule("coordinator name", ("user.name", "coordinator.name"),
          lambda c: c.staff.full_name, "Coordinator Name"),
    HeuristicRule("coordinator", _is_bare_coordinator,
                  lambda c: first(c.staff.full_name, c.staff.email), "Coordinator"),
    _rule("identification deadline", ("identification deadline", "identificationdeadline", "45 day"),
          lambda c: format_date(c.case.identification_deadline), "Identification Deadline"),
    _rule("completion deadline", ("completion deadline", "completiondeadline", "180 day"),
          lambda c: format_date(c.case.completion_deadline), "Completion Deadline"),
    _rule("current date", ("currentdate", "current date", "date.today", "todaysdate"),
          lambda c: format_date(c.now), "Current Date"),
)


def match_rule(key: str) -> HeuristicRule | None:
    """The first rule whose predicate accepts ``key``."""
    for rule in HEURISTIC_RULES:
        if rule.predicate(key):
            return rule
    return None


# ---------------------------------------------------------------------------
# Fallback text for required fields
# ---------------------------------------------------------------------------

def _fallback_table() -> dict[str, str]:
    table: dict[str, str] = {}
    for rule in HEURISTIC_RULES:
        for alias in rule.aliases:
            table.setdefault(alias, f"{rule.label} Not Available")
    for spec in EXACT_FIELDS:
        table[spec.key] = f"{spec.label} Not Available"
    return table


FALLBACK_VALUES: dict[str, str] = _fallback_table()
