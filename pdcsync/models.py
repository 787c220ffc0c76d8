"""
models.py - PDC Records
========================
Typed views of the JSON records exchanged with the PDC API.

Each record has a `from_json` constructor that checks the fields we rely on
and raises MalformedResponse when they are missing or have the wrong type.
Fields we never read are ignored rather than validated.
"""

from dataclasses import dataclass, field
from typing import Any

from .errors import MalformedResponse


# =============================================================================
# VALIDATION HELPERS
# =============================================================================

def expect_object(data: Any, what: str) -> dict:
    if not isinstance(data, dict):
        raise MalformedResponse(f"Expected {what} to be a JSON object, got {type(data).__name__}")
    return data


def expect_list(data: Any, what: str) -> list:
    if not isinstance(data, list):
        raise MalformedResponse(f"Expected {what} to be a JSON array, got {type(data).__name__}")
    return data


def _field(data: dict, key: str, kind: type | tuple, what: str, optional: bool = False):
    value = data.get(key)
    if value is None and optional:
        return None
    # bool is an int subclass; an id of `true` is not an id
    if not isinstance(value, kind) or (isinstance(value, bool) and kind is int):
        raise MalformedResponse(f"{what} has no valid '{key}' (got {value!r})")
    return value


# =============================================================================
# RECORDS
# =============================================================================

@dataclass(frozen=True)
class Applicant:
    id: int
    external_id: str
    opted_in: bool = False

    @classmethod
    def from_json(cls, data: Any) -> "Applicant":
        data = expect_object(data, "applicant")
        return cls(
            id=_field(data, "id", int, "applicant"),
            external_id=_field(data, "externalId", str, "applicant"),
            opted_in=bool(data.get("optedIn", False)),
        )


@dataclass(frozen=True)
class ApplicationFormField:
    id: int
    label: str
    position: int
    base_field_id: int | None = None

    @classmethod
    def from_json(cls, data: Any) -> "ApplicationFormField":
        data = expect_object(data, "application form field")
        base_field_id = data.get("baseFieldId", data.get("canonicalFieldId"))
        return cls(
            id=_field(data, "id", int, "application form field"),
            label=_field(data, "label", str, "application form field"),
            position=_field(data, "position", int, "application form field"),
            base_field_id=base_field_id if isinstance(base_field_id, int) else None,
        )


@dataclass(frozen=True)
class ApplicationForm:
    id: int
    opportunity_id: int
    fields: tuple[ApplicationFormField, ...]
    version: int | None = None

    @classmethod
    def from_json(cls, data: Any) -> "ApplicationForm":
        data = expect_object(data, "application form")
        raw_fields = expect_list(data.get("fields"), "application form 'fields'")
        return cls(
            id=_field(data, "id", int, "application form"),
            opportunity_id=_field(data, "opportunityId", int, "application form"),
            fields=tuple(ApplicationFormField.from_json(f) for f in raw_fields),
            version=_field(data, "version", int, "application form", optional=True),
        )

    def fields_labelled(self, label: str) -> list[ApplicationFormField]:
        """Every field whose label equals `label` (there may be several)."""
        return [f for f in self.fields if f.label == label]


@dataclass(frozen=True)
class Proposal:
    id: int
    applicant_id: int
    opportunity_id: int
    external_id: str
    # Raw version records as returned by GET /proposals; only the EIN
    # harvester looks inside them.
    versions: tuple = ()

    @classmethod
    def from_json(cls, data: Any) -> "Proposal":
        data = expect_object(data, "proposal")
        versions = data.get("versions") or []
        return cls(
            id=_field(data, "id", int, "proposal"),
            applicant_id=_field(data, "applicantId", int, "proposal"),
            opportunity_id=_field(data, "opportunityId", int, "proposal"),
            external_id=_field(data, "externalId", str, "proposal"),
            versions=tuple(expect_list(versions, "proposal 'versions'")),
        )

    def matches(self, opportunity_id: int, applicant_id: int, external_id: str) -> bool:
        return (
            self.opportunity_id == opportunity_id
            and self.applicant_id == applicant_id
            and self.external_id == external_id
        )


@dataclass(frozen=True)
class ProposalFieldValue:
    application_form_field_id: int
    position: int
    value: str

    def to_json(self) -> dict:
        return {
            "applicationFormFieldId": self.application_form_field_id,
            "position": self.position,
            "value": self.value,
        }


@dataclass
class ProposalVersion:
    proposal_id: int
    application_form_id: int
    field_values: list[ProposalFieldValue] = field(default_factory=list)

    def to_json(self) -> dict:
        return {
            "proposalId": self.proposal_id,
            "applicationFormId": self.application_form_id,
            "fieldValues": [fv.to_json() for fv in self.field_values],
        }


@dataclass(frozen=True)
class BaseField:
    id: int
    label: str
    short_code: str
    data_type: str | None = None

    @classmethod
    def from_json(cls, data: Any) -> "BaseField":
        data = expect_object(data, "base field")
        return cls(
            id=_field(data, "id", int, "base field"),
            label=_field(data, "label", str, "base field"),
            short_code=_field(data, "shortCode", str, "base field"),
            data_type=_field(data, "dataType", str, "base field", optional=True),
        )


def parse_bundle(data: Any, what: str) -> list:
    """Pull `entries` out of a paginated PDC bundle."""
    data = expect_object(data, f"{what} bundle")
    return expect_list(data.get("entries"), f"{what} bundle 'entries'")
