"""Tests for row reconciliation: applicants, proposals, field values, versions."""

import logging
from unittest.mock import MagicMock, patch

import pytest

from pdcsync.errors import (
    ApiError,
    ConflictError,
    MissingKeyColumn,
    SubmissionFailed,
    UnresolvableApplicant,
    UnresolvableProposal,
)
from pdcsync.http_client import HttpClient
from pdcsync.models import Applicant, ApplicationForm, Proposal
from pdcsync.reconcile import (
    build_field_values,
    process_row,
    resolve_applicant,
    resolve_proposal,
    submit_proposal_version,
)


@pytest.fixture
def form(form_json):
    return ApplicationForm.from_json(form_json)


@pytest.fixture
def applicant():
    return Applicant(id=50, external_id="12-3456789")


@pytest.fixture
def proposal():
    return Proposal(id=900, applicant_id=50, opportunity_id=3, external_id="P-1")


# ---------------------------------------------------------------------------
# resolve_applicant
# ---------------------------------------------------------------------------


class TestResolveApplicant:
    def test_returns_existing_without_creating(self, make_pdc):
        pdc = make_pdc(applicants=[
            {"id": 4, "externalId": "other"},
            {"id": 5, "externalId": "12-3456789"},
        ])

        applicant = resolve_applicant(pdc, "12-3456789")

        assert applicant.id == 5
        assert pdc.calls_to("POST", "/applicants") == []

    def test_first_match_wins(self, make_pdc):
        pdc = make_pdc(applicants=[
            {"id": 5, "externalId": "dup"},
            {"id": 6, "externalId": "dup"},
        ])
        assert resolve_applicant(pdc, "dup").id == 5

    def test_creates_missing_applicant_once(self, fake_pdc):
        applicant = resolve_applicant(fake_pdc, "new-org")

        assert applicant.external_id == "new-org"
        posts = fake_pdc.calls_to("POST", "/applicants")
        assert len(posts) == 1
        assert posts[0][2] == {"externalId": "new-org"}

    def test_conflict_refetches_and_returns_match(self):
        late = Applicant(id=77, external_id="racy")
        with patch("pdcsync.reconcile.pdc_api") as api:
            api.get_applicants.side_effect = [[], [late]]
            api.post_applicant.side_effect = ConflictError("POST", "/applicants", 409)

            result = resolve_applicant(MagicMock(), "racy")

        assert result == late
        assert api.get_applicants.call_count == 2
        assert api.post_applicant.call_count == 1

    def test_conflict_then_still_missing_is_unresolvable(self, fake_pdc):
        fake_pdc.applicant_conflict_always = True

        with pytest.raises(UnresolvableApplicant):
            resolve_applicant(fake_pdc, "ghost")

        # initial GET plus exactly one re-fetch
        assert len(fake_pdc.calls_to("GET", "/applicants")) == 2

    def test_other_create_errors_propagate(self):
        with patch("pdcsync.reconcile.pdc_api") as api:
            api.get_applicants.return_value = []
            api.post_applicant.side_effect = ApiError("POST", "/applicants", 500, "boom")

            with pytest.raises(ApiError) as exc:
                resolve_applicant(MagicMock(), "x")

        assert not isinstance(exc.value, ConflictError)
        assert api.get_applicants.call_count == 1


# ---------------------------------------------------------------------------
# resolve_proposal
# ---------------------------------------------------------------------------


class TestResolveProposal:
    def test_cached_triple_is_not_recreated(self, fake_pdc, applicant):
        cached = [
            Proposal(id=1, applicant_id=50, opportunity_id=3, external_id="other"),
            Proposal(id=2, applicant_id=50, opportunity_id=3, external_id="P-1"),
        ]

        proposal = resolve_proposal(fake_pdc, cached, 3, applicant, "P-1")

        assert proposal.id == 2
        assert fake_pdc.calls_to("POST", "/proposals") == []

    @pytest.mark.parametrize("opportunity_id, applicant_id, external_id", [
        (4, 50, "P-1"),
        (3, 51, "P-1"),
        (3, 50, "P-2"),
    ])
    def test_partial_match_creates(self, fake_pdc, applicant, opportunity_id, applicant_id, external_id):
        cached = [Proposal(id=2, applicant_id=applicant_id, opportunity_id=opportunity_id,
                           external_id=external_id)]

        proposal = resolve_proposal(fake_pdc, cached, 3, applicant, "P-1")

        posts = fake_pdc.calls_to("POST", "/proposals")
        assert len(posts) == 1
        assert posts[0][2] == {"applicantId": 50, "opportunityId": 3, "externalId": "P-1"}
        assert proposal.id != 2

    def test_cache_is_not_updated(self, fake_pdc, applicant):
        cached = []
        resolve_proposal(fake_pdc, cached, 3, applicant, "P-1")
        assert cached == []

    def test_unusable_create_response(self, fake_pdc, applicant):
        fake_pdc.proposal_post_returns = "nothing"
        with pytest.raises(UnresolvableProposal):
            resolve_proposal(fake_pdc, [], 3, applicant, "P-1")


# ---------------------------------------------------------------------------
# build_field_values
# ---------------------------------------------------------------------------


class TestBuildFieldValues:
    def test_matches_labels_and_skips_unknown_columns(self, form, proposal, caplog):
        row = {"Org Name": "Acme", "Budget": "1000", "Extra": "x"}

        with caplog.at_level(logging.INFO, logger="pdcsync.reconcile"):
            values = build_field_values(proposal, form, row)

        assert [(v.application_form_field_id, v.value) for v in values] == [(1, "Acme"), (2, "1000")]
        assert [v.position for v in values] == [1, 2]
        assert "'Extra'" in caplog.text

    @pytest.mark.parametrize("empty", ["", None])
    def test_empty_values_are_skipped(self, form, proposal, empty, caplog):
        row = {"Org Name": empty, "Budget": "1000"}

        with caplog.at_level(logging.INFO, logger="pdcsync.reconcile"):
            values = build_field_values(proposal, form, row)

        assert [v.application_form_field_id for v in values] == [2]
        assert "null or empty" in caplog.text

    def test_one_column_fans_out_to_every_matching_field(self, form_json, proposal):
        form_json["fields"].append({"id": 3, "label": "Org Name", "position": 9})
        form_json["fields"].append({"id": 4, "label": "Org Name", "position": 10})
        form = ApplicationForm.from_json(form_json)

        values = build_field_values(proposal, form, {"Org Name": "Acme"})

        assert sorted(v.application_form_field_id for v in values) == [1, 3, 4]
        assert {v.value for v in values} == {"Acme"}

    def test_no_matches_gives_empty_list(self, form, proposal):
        assert build_field_values(proposal, form, {"Nope": "1"}) == []


# ---------------------------------------------------------------------------
# submit_proposal_version / process_row
# ---------------------------------------------------------------------------


class TestSubmitProposalVersion:
    def test_posts_composed_version(self, fake_pdc, form, proposal):
        version = submit_proposal_version(fake_pdc, proposal, form, {"Org Name": "Acme", "Extra": "x"})

        assert fake_pdc.versions == [{
            "proposalId": 900,
            "applicationFormId": 7,
            "fieldValues": [{"applicationFormFieldId": 1, "position": 1, "value": "Acme"}],
        }]
        assert version.to_json() == fake_pdc.versions[0]

    def test_every_call_creates_a_new_version(self, fake_pdc, form, proposal):
        row = {"Org Name": "Acme"}
        submit_proposal_version(fake_pdc, proposal, form, row)
        submit_proposal_version(fake_pdc, proposal, form, row)
        assert len(fake_pdc.versions) == 2

    def test_transport_failure_becomes_submission_failed(self, fake_pdc, form, proposal):
        fake_pdc.fail_version_post = True

        with pytest.raises(SubmissionFailed) as exc:
            submit_proposal_version(fake_pdc, proposal, form, {"Org Name": "Acme"})

        assert isinstance(exc.value.__cause__, ApiError)
        assert len(fake_pdc.calls_to("POST", "/proposalVersions")) == 1

    def test_created_with_text_body_is_accepted(self, form, proposal):
        reply = MagicMock()
        reply.status_code = 201
        reply.reason = "Created"
        reply.content = b"Created"
        reply.text = "Created"
        reply.headers = {"content-type": "text/plain"}
        reply.json.side_effect = ValueError("Expecting value")
        client = HttpClient("https://pdc.example.org")

        with patch.object(client.s, "request", return_value=reply) as request:
            version = submit_proposal_version(client, proposal, form, {"Org Name": "Acme"})

        assert request.call_args.args == ("POST", "https://pdc.example.org/proposalVersions")
        assert version.proposal_id == 900
        assert len(version.field_values) == 1
        client.close()


class TestProcessRow:
    def test_end_to_end(self, fake_pdc, form):
        row = {"EIN": "12-3456789", "Proposal ID": "P-1", "Org Name": "Acme", "Budget": "1000"}

        version = process_row(fake_pdc, form, [], row, "EIN", "Proposal ID")

        assert fake_pdc.applicants[0]["externalId"] == "12-3456789"
        assert fake_pdc.proposals[0]["opportunityId"] == 3
        assert fake_pdc.proposals[0]["applicantId"] == fake_pdc.applicants[0]["id"]
        assert version.proposal_id == fake_pdc.proposals[0]["id"]
        assert len(version.field_values) == 2

    @pytest.mark.parametrize("row", [
        {"Proposal ID": "P-1", "Org Name": "Acme"},
        {"EIN": "", "Proposal ID": "P-1"},
        {"EIN": "12-3456789", "Org Name": "Acme"},
    ])
    def test_missing_key_values(self, fake_pdc, form, row):
        with pytest.raises(MissingKeyColumn):
            process_row(fake_pdc, form, [], row, "EIN", "Proposal ID")
