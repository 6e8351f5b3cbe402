"""Core data models for tokens, record graphs, resolutions, and results."""

from __future__ import annotations

from datetime import date, datetime
from enum import Enum
from typing import Any

from pydantic import AliasChoices, BaseModel, Field, field_validator

# Dates arrive from the data store as ISO strings, date or datetime objects.
DateLike = datetime | date | str | None
# Numeric columns may be serialized as strings ("250000.00").
MoneyLike = float | str | None


def _alias(*names: str) -> AliasChoices:
    return AliasChoices(*names)


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class TokenSyntax(str, Enum):
    HASH = "hash"      # #Client.Name#
    BRACE = "brace"    # {Client.Name}
    BARE = "bare"      # Client.Name (delimiters lost to run fragmentation)


class Origin(str, Enum):
    EXACT = "exact-match"
    HEURISTIC = "heuristic-match"
    FALLBACK = "fallback"
    UNRESOLVED = "unresolved"


class TemplateKind(str, Enum):
    ARCHIVE = "archive"
    PDF = "pdf"
    TEXT = "text"


class PartyRole(str, Enum):
    CO_OWNER = "co_owner"
    TRUSTEE = "trustee"
    BENEFICIARY = "beneficiary"
    PARTNER = "partner"
    ATTORNEY = "attorney"
    REALTOR = "realtor"
    TITLE_COMPANY = "title_company"
    ACCOUNTANT = "accountant"
    COORDINATOR = "coordinator"
    OTHER = "other"


ROLE_SYNONYMS = {
    "co-owner": PartyRole.CO_OWNER,
    "coowner": PartyRole.CO_OWNER,
    "owner": PartyRole.CO_OWNER,
    "lawyer": PartyRole.ATTORNEY,
    "agent": PartyRole.REALTOR,
    "broker": PartyRole.REALTOR,
    "title": PartyRole.TITLE_COMPANY,
    "cpa": PartyRole.ACCOUNTANT,
    "exchange_coordinator": PartyRole.COORDINATOR,
}


# ---------------------------------------------------------------------------
# Tokens
# ---------------------------------------------------------------------------

class Token(BaseModel):
    """A placeholder found in template text. Identity is ``key``."""

    model_config = {"frozen": True}

    raw_form: str
    key: str
    syntaxes: frozenset[TokenSyntax] = frozenset()


class ScanResult(BaseModel):
    tokens: dict[str, Token] = Field(default_factory=dict)
    parts_scanned: int = 0
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


# ---------------------------------------------------------------------------
# Record graph
# ---------------------------------------------------------------------------

class ExchangeCase(BaseModel):
    """Exchange-level record (one row of the ``exchanges`` table)."""

    model_config = {"extra": "ignore", "populate_by_name": True}

    id: str | int | None = None
    exchange_number: str | int | None = Field(None, validation_alias=_alias("exchange_number", "exchangeNumber"))
    matter_number: str | int | None = None
    pp_matter_number: str | int | None = None
    pp_matter_id: str | int | None = None
    name: str | None = None
    exchange_name: str | None = Field(None, validation_alias=_alias("exchange_name", "exchangeName"))
    matter_name: str | None = None
    exchange_type: str | None = Field(None, validation_alias=_alias("exchange_type", "exchangeType"))
    matter_type: str | None = None
    status: str | None = None
    new_status: str | None = None
    category: str | None = None
    priority: str | None = None
    risk_level: str | None = Field(None, validation_alias=_alias("risk_level", "riskLevel"))
    notes: str | None = Field(None, validation_alias=_alias("notes", "client_notes", "clientNotes"))

    # Financial
    exchange_value: MoneyLike = Field(None, validation_alias=_alias("exchange_value", "exchangeValue", "value"))
    fee: MoneyLike = None
    relinquished_sale_price: MoneyLike = Field(
        None, validation_alias=_alias("relinquished_sale_price", "relinquishedSalePrice"))
    relinquished_value: MoneyLike = Field(None, validation_alias=_alias("relinquished_value", "relinquishedValue"))
    replacement_value: MoneyLike = Field(None, validation_alias=_alias("replacement_value", "replacementValue"))
    net_proceeds: MoneyLike = None

    # Key dates
    start_date: DateLike = Field(None, validation_alias=_alias("start_date", "startDate"))
    identification_deadline: DateLike = Field(
        None, validation_alias=_alias("identification_deadline", "identificationDeadline"))
    completion_deadline: DateLike = Field(
        None, validation_alias=_alias("completion_deadline", "completionDeadline"))
    relinquished_closing_date: DateLike = Field(
        None, validation_alias=_alias("relinquished_closing_date", "relinquishedClosingDate"))
    created_at: DateLike = None
    updated_at: DateLike = None

    # Client / signatories
    client_id: str | int | None = None
    coordinator_id: str | int | None = None
    client_email: str | None = None
    client_phone: str | None = None
    buyer_1_name: str | None = None
    client_vesting: str | None = None
    client1_signatory_title: str | None = None
    client2_name: str | None = None
    client2_signatory_title: str | None = None
    client2_address: str | None = None
    client2_phone: str | None = None
    client2_email: str | None = None

    # Properties (flat columns; detailed rows live in PropertyRecord)
    property_type: str | None = None
    property_address: str | None = Field(None, validation_alias=_alias("property_address", "propertyAddress"))
    relinquished_property_address: str | None = Field(None, validation_alias=_alias(
        "relinquished_property_address", "relinquishedPropertyAddress",
        "rel_property_address", "property_sold_address"))
    relinquished_property_city: str | None = Field(
        None, validation_alias=_alias("relinquished_property_city", "rel_property_city"))
    relinquished_property_state: str | None = Field(
        None, validation_alias=_alias("relinquished_property_state", "rel_property_state"))
    relinquished_property_zip: str | None = Field(
        None, validation_alias=_alias("relinquished_property_zip", "rel_property_zip"))
    replacement_property_address: str | None = Field(None, validation_alias=_alias(
        "replacement_property_address", "rep_1_property_address", "property_bought_address"))

    # Escrow / settlement agents
    rel_escrow_number: str | None = None
    rel_escrow_company: str | None = None
    rel_settlement_agent_first_name: str | None = None
    rel_settlement_agent_last_name: str | None = None
    rel_settlement_street1: str | None = None
    rel_settlement_street2: str | None = None
    rel_settlement_city: str | None = None
    rel_settlement_state: str | None = None
    rel_settlement_zip: str | None = None
    rep_escrow_number: str | None = Field(None, validation_alias=_alias("rep_escrow_number", "rep_1_escrow_number"))
    rep_escrow_company: str | None = None
    rep_settlement_agent_first_name: str | None = None
    rep_settlement_agent_last_name: str | None = None
    rep_settlement_street1: str | None = None
    rep_settlement_street2: str | None = None
    rep_settlement_city: str | None = None
    rep_settlement_state: str | None = None
    rep_settlement_zip: str | None = None

    # Qualified intermediary
    qi_company: str | None = Field(None, validation_alias=_alias("qi_company", "qiCompany"))
    qi_name: str | None = Field(None, validation_alias=_alias("qi_name", "qiName"))
    qi_address: str | None = Field(None, validation_alias=_alias("qi_address", "qiAddress"))
    qi_phone: str | None = Field(None, validation_alias=_alias("qi_phone", "qiPhone"))
    qi_email: str | None = Field(None, validation_alias=_alias("qi_email", "qiEmail"))

    # Raw practice-management payload (keys like "Contact.FirstName")
    pp_data: dict[str, Any] | list[Any] | None = None

    def legacy_payload(self) -> dict[str, Any]:
        """Return the practice-management payload as a flat dict."""
        data = self.pp_data
        if isinstance(data, list):
            data = data[0] if data else None
        return data if isinstance(data, dict) else {}


class Contact(BaseModel):
    """Primary party (the exchanger / client)."""

    model_config = {"extra": "ignore", "populate_by_name": True}

    id: str | int | None = None
    name: str | None = None
    first_name: str | None = Field(None, validation_alias=_alias("first_name", "firstName"))
    last_name: str | None = Field(None, validation_alias=_alias("last_name", "lastName"))
    company: str | None = None
    email: str | None = None
    phone: str | None = Field(None, validation_alias=_alias("phone", "phone_mobile", "phone_work", "home_number"))
    street1: str | None = Field(None, validation_alias=_alias("street1", "address", "street"))
    street2: str | None = None
    city: str | None = None
    state: str | None = Field(None, validation_alias=_alias("state", "province_state", "region"))
    zip_postal_code: str | None = Field(
        None, validation_alias=_alias("zip_postal_code", "zip", "zip_code", "postal_code"))

    @property
    def full_name(self) -> str:
        if self.name:
            return self.name
        return f"{self.first_name or ''} {self.last_name or ''}".strip()


class StaffMember(BaseModel):
    """Assigned exchange coordinator."""

    model_config = {"extra": "ignore", "populate_by_name": True}

    id: str | int | None = None
    name: str | None = None
    first_name: str | None = Field(None, validation_alias=_alias("first_name", "firstName"))
    last_name: str | None = Field(None, validation_alias=_alias("last_name", "lastName"))
    email: str | None = None
    phone: str | None = None
    title: str | None = None

    @property
    def full_name(self) -> str:
        if self.name:
            return self.name
        return f"{self.first_name or ''} {self.last_name or ''}".strip()


class RelatedParty(BaseModel):
    model_config = {"extra": "ignore", "populate_by_name": True}

    id: str | int | None = None
    role: PartyRole = Field(PartyRole.OTHER, validation_alias=_alias("role", "participant_type", "participantType"))
    name: str | None = None
    first_name: str | None = Field(None, validation_alias=_alias("first_name", "firstName"))
    last_name: str | None = Field(None, validation_alias=_alias("last_name", "lastName"))
    company: str | None = None
    email: str | None = None
    phone: str | None = None

    @field_validator("role", mode="before")
    @classmethod
    def _normalize_role(cls, value: Any) -> Any:
        if value is None:
            return PartyRole.OTHER
        if isinstance(value, PartyRole):
            return value
        text = str(value).strip().lower().replace(" ", "_")
        if text in ROLE_SYNONYMS:
            return ROLE_SYNONYMS[text]
        try:
            return PartyRole(text)
        except ValueError:
            return PartyRole.OTHER

    @property
    def full_name(self) -> str:
        if self.name:
            return self.name
        return f"{self.first_name or ''} {self.last_name or ''}".strip()


class PropertyRecord(BaseModel):
    model_config = {"extra": "ignore", "populate_by_name": True}

    id: str | int | None = None
    kind: str = Field("", validation_alias=_alias("kind", "property_type", "type"))  # relinquished | replacement
    address: str | None = Field(None, validation_alias=_alias("address", "street", "street1"))
    city: str | None = None
    state: str | None = None
    zip: str | None = Field(None, validation_alias=_alias("zip", "zip_code", "postal_code"))
    value: MoneyLike = Field(None, validation_alias=_alias("value", "sale_price", "purchase_price", "price"))
    closing_date: DateLike = None
    escrow_number: str | None = None

    @field_validator("kind", mode="before")
    @classmethod
    def _normalize_kind(cls, value: Any) -> str:
        return str(value or "").strip().lower()


class RecordGraph(BaseModel):
    """Everything one generation request knows about a case."""

    case: ExchangeCase = Field(default_factory=ExchangeCase)
    primary_party: Contact | None = None
    assigned_staff: StaffMember | None = None
    related_parties: list[RelatedParty] = Field(default_factory=list)
    properties: list[PropertyRecord] = Field(default_factory=list)

    def parties_with_role(self, role: PartyRole) -> list[RelatedParty]:
        return [p for p in self.related_parties if p.role == role]

    def first_property(self, kind: str) -> PropertyRecord | None:
        for prop in self.properties:
            if prop.kind == kind:
                return prop
        return None


# ---------------------------------------------------------------------------
# Resolution
# ---------------------------------------------------------------------------

class ResolvedValue(BaseModel):
    model_config = {"frozen": True}

    value: str
    origin: Origin


class GenerationWarning(BaseModel):
    token: str
    origin: Origin
    detail: str = ""


# ---------------------------------------------------------------------------
# Templates and results
# ---------------------------------------------------------------------------

class TemplateRecord(BaseModel):
    """One row of the ``document_templates`` table."""

    model_config = {"extra": "ignore"}

    id: str | int
    name: str = "document"
    file_template: str | None = None  # inline text, or a public storage URL
    file_path: str | None = None
    required_fields: list[str] = Field(default_factory=list)

    @field_validator("required_fields", mode="before")
    @classmethod
    def _none_to_empty(cls, value: Any) -> Any:
        return value or []


class GenerationResult(BaseModel):
    archive_bytes: bytes
    resolved_count: int = 0
    warnings: list[GenerationWarning] = Field(default_factory=list)
    replacement_count: int = 0
    kind: TemplateKind = TemplateKind.ARCHIVE
    filename: str = ""
    content_type: str = ""
    document_ref: str = ""
    notices: list[str] = Field(default_factory=list)
