"""
Shared test fixtures.

FakePdc stands in for an authenticated HttpClient: it answers the PDC
endpoints from in-memory lists, enforces the applicant externalId unique
constraint with a 409 like the real API, and records every call.
"""

import copy
import threading

import pytest

from pdcsync.errors import ApiError, ConflictError


# ---------------------------------------------------------------------------
# Environment fixtures
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    """Tests never see a developer's real DS_* settings or .env file."""
    import os

    for key in list(os.environ):
        if key.startswith("DS_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.setattr("pdcsync.config.load_dotenv", lambda *a, **kw: False)


# ---------------------------------------------------------------------------
# Fake PDC
# ---------------------------------------------------------------------------

class FakePdc:
    def __init__(self, form=None, applicants=(), proposals=(), base_fields=()):
        self.form = form
        self.applicants = [dict(a) for a in applicants]
        self.proposals = [dict(p) for p in proposals]
        self.base_fields = list(base_fields)
        self.versions = []
        self.provider_responses = []
        self.calls = []
        self._lock = threading.Lock()
        self._next_id = 1000

        # Knobs for failure scenarios
        self.applicant_conflict_always = False
        self.fail_version_post = False
        self.proposal_post_returns = "record"
        self.pool_size = None

    def _new_id(self):
        self._next_id += 1
        return self._next_id

    def calls_to(self, method, path):
        return [c for c in self.calls if c[0] == method and c[1] == path]

    # -- HttpClient interface ------------------------------------------------

    def get_json(self, path, params=None):
        with self._lock:
            self.calls.append(("GET", path, params))
            if path == "/applicants":
                return copy.deepcopy(self.applicants)
            if path.startswith("/applicationForms/"):
                return copy.deepcopy(self.form)
            if path == "/proposals":
                return {"entries": copy.deepcopy(self.proposals)}
            if path == "/baseFields":
                return copy.deepcopy(self.base_fields)
        raise ApiError("GET", path, 404, "not found")

    def post_json(self, path, payload, params=None):
        with self._lock:
            self.calls.append(("POST", path, payload))

            if path == "/applicants":
                taken = any(a["externalId"] == payload["externalId"] for a in self.applicants)
                if taken or self.applicant_conflict_always:
                    raise ConflictError("POST", path, 409, "duplicate key value")
                applicant = {"id": self._new_id(), "externalId": payload["externalId"], "optedIn": False}
                self.applicants.append(applicant)
                return dict(applicant)

            if path == "/proposals":
                if self.proposal_post_returns == "nothing":
                    return None
                proposal = {"id": self._new_id(), **payload}
                self.proposals.append(proposal)
                return dict(proposal)

            if path == "/proposalVersions":
                if self.fail_version_post:
                    raise ApiError("POST", path, 500, "internal error")
                self.versions.append(copy.deepcopy(payload))
                return {"id": self._new_id(), **payload}

            if path == "/platformProviderResponses":
                self.provider_responses.append(copy.deepcopy(payload))
                return payload

        raise ApiError("POST", path, 404, "not found")

    def set_pool_size(self, size):
        self.pool_size = size

    def close(self):
        pass


FORM_JSON = {
    "id": 7,
    "opportunityId": 3,
    "version": 1,
    "fields": [
        {"id": 1, "label": "Org Name", "position": 1, "baseFieldId": 11},
        {"id": 2, "label": "Budget", "position": 2, "baseFieldId": 12},
    ],
}


@pytest.fixture
def form_json():
    return copy.deepcopy(FORM_JSON)


@pytest.fixture
def fake_pdc(form_json):
    return FakePdc(form=form_json)


@pytest.fixture
def make_pdc(form_json):
    """Factory for FakePdc instances with extra applicants/proposals."""
    def _make(**kwargs):
        kwargs.setdefault("form", form_json)
        return FakePdc(**kwargs)
    return _make
