"""Layered resolution: exact, heuristic, fallback, unresolved."""

from datetime import date, datetime

import pytest

from docgen.engine.fields import FALLBACK_VALUES, build_exact_table, match_rule
from docgen.engine.resolver import resolve, resolved_count
from docgen.engine.scanner import scan_text
from docgen.errors import MissingRequiredField
from docgen.models import (
    Contact,
    ExchangeCase,
    Origin,
    PartyRole,
    PropertyRecord,
    RecordGraph,
    RelatedParty,
    ResolvedValue,
    StaffMember,
)

TODAY = datetime(2024, 3, 1, 9, 30)


def test_exact_match_client_name(jane_graph):
    resolution, warnings = resolve(scan_text("#Client.Name#"), jane_graph, today=TODAY)
    assert resolution["client.name"] == ResolvedValue(value="Jane Doe", origin=Origin.EXACT)
    assert warnings == []


def test_bare_contact_first_name_is_heuristic(jane_graph):
    resolution, warnings = resolve(scan_text("Contact.FirstName"), jane_graph, today=TODAY)
    assert resolution["contact.firstname"] == ResolvedValue(value="Jane", origin=Origin.HEURISTIC)
    assert len(warnings) == 1
    assert warnings[0].origin is Origin.HEURISTIC


def test_unknown_token_is_marked_unresolved(jane_graph):
    resolution, warnings = resolve(scan_text("#Matter.Exotic Field#"), jane_graph, today=TODAY)
    assert resolution["matter.exotic field"].value == "[matter.exotic field]"
    assert resolution["matter.exotic field"].origin is Origin.UNRESOLVED
    assert [w.token for w in warnings] == ["matter.exotic field"]


def test_required_token_without_fallback_fails(jane_graph):
    with pytest.raises(MissingRequiredField) as exc:
        resolve(scan_text("#Matter.Exotic Field#"), jane_graph, required=["#Matter.Exotic Field#"], today=TODAY)
    assert exc.value.tokens == ["matter.exotic field"]


def test_missing_required_fields_are_reported_together(jane_graph):
    """Of A, B, C only A resolves: one failure naming exactly B and C."""
    tokens = scan_text("#Client.Name# #Matter.Exotic Field# #Exchange.Mystery#")
    required = ["#Client.Name#", "#Matter.Exotic Field#", "#Exchange.Mystery#"]
    with pytest.raises(MissingRequiredField) as exc:
        resolve(tokens, jane_graph, required=required, today=TODAY)
    assert set(exc.value.tokens) == {"matter.exotic field", "exchange.mystery"}
    assert exc.value.to_dict()["fields"] == exc.value.tokens


def test_required_field_uses_fallback_text(jane_graph):
    resolution, warnings = resolve(scan_text("#Client.Email#"), jane_graph, required=["client.email"], today=TODAY)
    assert resolution["client.email"] == ResolvedValue(value="Client Email Not Available", origin=Origin.FALLBACK)
    assert warnings[0].origin is Origin.FALLBACK


def test_custom_fallback_table(jane_graph):
    table = {**FALLBACK_VALUES, "matter.exotic field": "To be provided"}
    resolution, _ = resolve(scan_text("#Matter.Exotic Field#"), jane_graph, table,
                            required=["matter.exotic field"], today=TODAY)
    assert resolution["matter.exotic field"].value == "To be provided"


def test_required_fields_absent_from_template_are_ignored(jane_graph):
    resolution, _ = resolve(scan_text("#Client.Name#"), jane_graph, required=["#Matter.Exotic Field#"], today=TODAY)
    assert list(resolution) == ["client.name"]


def test_resolution_is_total(jane_graph):
    tokens = scan_text(
        "#Client.Name# {Client.Email} Contact.FirstName #Matter.Exotic Field# "
        "#QI.Company# {System.Version} #Attorney.Name# Coordinator.Email"
    )
    resolution, _ = resolve(tokens, jane_graph, today=TODAY)
    assert sorted(resolution) == sorted(tokens)
    assert resolved_count(resolution) == len(tokens) - sum(
        1 for v in resolution.values() if v.origin is Origin.UNRESOLVED
    )


def test_values_never_contain_token_syntax():
    graph = RecordGraph(
        case=ExchangeCase(id="ex-9", notes="see #Client.Name# and {Exchange.Number}"),
        primary_party=Contact(first_name="#Evil#", last_name="{Twin}"),
    )
    tokens = scan_text("#Client.Name# #System.Notes# #Matter.Nothing Here#")
    resolution, _ = resolve(tokens, graph, today=TODAY)
    for value in resolution.values():
        assert not set("#{}") & set(value.value), value
    assert scan_text(resolution["matter.nothing here"].value) == {}


def test_resolution_map_is_read_only(jane_graph):
    resolution, _ = resolve(scan_text("#Client.Name#"), jane_graph, today=TODAY)
    with pytest.raises(TypeError):
        resolution["client.name"] = ResolvedValue(value="x", origin=Origin.EXACT)


def test_token_override_wins(jane_graph):
    resolution, warnings = resolve(scan_text("#Client.Name#"), jane_graph,
                                   overrides={"Client.Name": "Override Name"}, today=TODAY)
    assert resolution["client.name"] == ResolvedValue(value="Override Name", origin=Origin.EXACT)
    assert warnings == []


def test_graph_override_feeds_exact_table(jane_graph):
    resolution, _ = resolve(scan_text("#Exchange.Value# #Coordinator.Email#"), jane_graph,
                            overrides={"case.exchange_value": 1250000, "assigned_staff.email": "a@b.com"},
                            today=TODAY)
    assert resolution["exchange.value"].value == "$1,250,000.00"
    assert resolution["coordinator.email"].value == "a@b.com"


def test_legacy_payload_keys_resolve_exactly():
    graph = RecordGraph(case=ExchangeCase(id="ex-2", pp_data={"Matter.Custom Note": "Hello there"}))
    resolution, warnings = resolve(scan_text("#Matter.Custom Note#"), graph, today=TODAY)
    assert resolution["matter.custom note"] == ResolvedValue(value="Hello there", origin=Origin.EXACT)
    assert warnings == []


def test_heuristic_miss_does_not_try_later_rules():
    graph = RecordGraph(case=ExchangeCase(id="ex-3"))
    resolution, _ = resolve(scan_text("Contact.FirstName"), graph, today=TODAY)
    assert resolution["contact.firstname"].origin is Origin.UNRESOLVED


def test_rule_order_is_most_specific_first():
    assert match_rule("matter.client vesting").name == "client vesting"
    assert match_rule("matter.client 2 name").name == "second client name"
    assert match_rule("matter.client").name == "client name"
    assert match_rule("contact.firstname").name == "client first name"
    assert match_rule("matter.rel settlement agent.city").name == "rel settlement city"
    assert match_rule("matter.rel settlement agent.zippostalcode").name == "rel settlement zip"
    assert match_rule("matter.rep settlement agent.zippostalcode").name == "rep settlement zip"
    assert match_rule("contact.zippostalcode").name == "client zip"
    assert match_rule("matter.client 2 signatory title").name == "second signatory title"
    assert match_rule("coordinator").name == "coordinator"
    assert match_rule("matter.exotic field") is None


def test_missing_legal_fields_do_not_borrow_client_data():
    """A settlement agent zip or co-signer title never falls back to the client's own record."""
    graph = RecordGraph(
        case=ExchangeCase(id="ex-4"),
        primary_party=Contact(first_name="Jane", last_name="Doe", zip_postal_code="90210"),
    )
    tokens = scan_text("#Matter.Rel Settlement Agent.ZipPostalCode# #Matter.Client 2 Signatory Title#")
    resolution, _ = resolve(tokens, graph, today=TODAY)
    assert resolution["matter.rel settlement agent.zippostalcode"].origin is Origin.UNRESOLVED
    assert resolution["matter.client 2 signatory title"].origin is Origin.UNRESOLVED


class TestExactTable:

    def graph(self) -> RecordGraph:
        return RecordGraph(
            case=ExchangeCase(
                id="ex-1",
                exchange_number="EX-2024-001",
                status="45D",
                exchange_value="750000",
                start_date="2024-01-15",
                completion_deadline="2024-07-13T00:00:00Z",
                rel_settlement_agent_first_name="Pat",
            ),
            primary_party=Contact(first_name="Jane", last_name="Doe", city="Springfield"),
            assigned_staff=StaffMember(first_name="Sam", last_name="Lee", email="sam@peak1031.com"),
            related_parties=[RelatedParty(role=PartyRole.ATTORNEY, first_name="Alex", last_name="Counsel")],
            properties=[
                PropertyRecord(kind="relinquished", address="123 Main St", value=750000),
                PropertyRecord(kind="replacement", address="9 Oak Ave"),
            ],
        )

    def test_formats_and_defaults(self):
        table = build_exact_table(self.graph(), now=TODAY)
        assert table["exchange.number"] == "EX-2024-001"
        assert table["exchange.value"] == "$750,000.00"
        assert table["date.start"] == "1/15/2024"
        assert table["date.completiondeadline"] == "7/13/2024"
        assert table["system.currentdatetime"] == "3/1/2024, 9:30:00 AM"
        assert table["qi.company"] == "Peak 1031 Exchange"
        assert table["system.version"] == "2.0"
        assert table["system.generatedby"] == "sam@peak1031.com"
        assert table["matter.client 1 signatory title"] == "Exchanger"

    def test_computed_exchange_fields(self):
        table = build_exact_table(self.graph(), now=TODAY)
        assert table["exchange.timeline"] == "180 days"
        assert table["exchange.daysremaining"] == "134 days"
        assert table["exchange.progress"] == "50%"
        assert table["exchange.iscomplete"] == "No"

    def test_deadline_in_the_past_reads_expired(self):
        table = build_exact_table(self.graph(), now=datetime(2024, 8, 1))
        assert table["exchange.daysremaining"] == "Expired"

    def test_related_records(self):
        table = build_exact_table(self.graph(), now=TODAY)
        assert table["attorney.name"] == "Alex Counsel"
        assert table["property.relinquishedaddress"] == "123 Main St"
        assert table["property.replacementaddress"] == "9 Oak Ave"
        assert table["property.saleprice"] == "$750,000.00"
        assert table["coordinator.name"] == "Sam Lee"
        assert table["matter.rel settlement agent.firstname"] == "Pat"

    def test_empty_values_are_left_out(self):
        table = build_exact_table(self.graph(), now=TODAY)
        assert "client.email" not in table
        assert "realtor.name" not in table
        assert not any(key.startswith("contact.") for key in table)

    def test_configured_qi_company(self):
        table = build_exact_table(self.graph(), now=TODAY, qi_company="Acme Exchange Services")
        assert table["qi.company"] == "Acme Exchange Services"

    def test_accepts_plain_date_for_today(self, jane_graph):
        resolution, _ = resolve(scan_text("#Date.Current#"), jane_graph, today=date(2024, 12, 25))
        assert resolution["date.current"].value == "12/25/2024"
