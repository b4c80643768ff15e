import pathlib
import sys
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient
import jwt

ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from contract_review.analysis import MockAnalyzer
from contract_review.main import create_app
from contract_review.models import IdentityContext, Role
from contract_review.settings import EngineSettings
from contract_review.store import InMemoryVersionedStore
from contract_review.workflow import WorkflowEngine, engine


def _issue_token(*, secret: str, account_id: str, role: str) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "sub": account_id,
        "role": role,
        "exp": int((now + timedelta(minutes=30)).timestamp()),
        "iat": int(now.timestamp()),
        "iss": "test-issuer",
        "aud": "test-audience",
    }
    return jwt.encode(payload, secret, algorithm="HS256")


class AuthenticatedClient:
    def __init__(self, client: TestClient, *, jwt_secret: str, account_id: str = "admin_1", role: str = "admin"):
        self._client = client
        self._jwt_secret = jwt_secret
        self.account_id = account_id
        self.role = role

    def as_account(self, account_id: str, role: str) -> "AuthenticatedClient":
        return AuthenticatedClient(self._client, jwt_secret=self._jwt_secret, account_id=account_id, role=role)

    def request(self, method: str, url: str, **kwargs):
        headers = dict(kwargs.pop("headers", {}) or {})
        if url.startswith("/api/v1/") and "Authorization" not in headers:
            token = _issue_token(secret=self._jwt_secret, account_id=self.account_id, role=self.role)
            headers["Authorization"] = f"Bearer {token}"
        return self._client.request(method, url, headers=headers, **kwargs)

    def __getattr__(self, name: str):
        return getattr(self._client, name)

    def get(self, url: str, **kwargs):
        return self.request("GET", url, **kwargs)

    def post(self, url: str, **kwargs):
        return self.request("POST", url, **kwargs)

    def patch(self, url: str, **kwargs):
        return self.request("PATCH", url, **kwargs)

    def delete(self, url: str, **kwargs):
        return self.request("DELETE", url, **kwargs)


@pytest.fixture(autouse=True)
def reset_store(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("JWT_SHARED_SECRET", "jwt_test_secret")
    monkeypatch.setenv("JWT_ISSUER", "test-issuer")
    monkeypatch.setenv("JWT_AUDIENCE", "test-audience")
    monkeypatch.setenv("JWT_REQUIRED_CLAIMS", "sub,role,exp")
    engine.reset(settings=EngineSettings(), analyzer=MockAnalyzer())
    yield


@pytest.fixture
def client() -> AuthenticatedClient:
    app = create_app()
    base = TestClient(app)
    return AuthenticatedClient(base, jwt_secret="jwt_test_secret")


@pytest.fixture
def wf() -> WorkflowEngine:
    return WorkflowEngine(store=InMemoryVersionedStore(), analyzer=MockAnalyzer(), settings=EngineSettings())


@pytest.fixture
def actors(wf: WorkflowEngine) -> dict[str, IdentityContext]:
    wf.create_account(account_id="admin_1", role="admin", display_name="Admin")
    wf.create_account(account_id="client_1", role="client", display_name="Client", credit_balance=10)
    wf.create_account(account_id="auditor_a", role="auditor", display_name="Auditor A")
    wf.create_account(account_id="auditor_b", role="auditor", display_name="Auditor B")
    return {
        "admin": IdentityContext(account_id="admin_1", role=Role.ADMIN),
        "client": IdentityContext(account_id="client_1", role=Role.CLIENT),
        "a": IdentityContext(account_id="auditor_a", role=Role.AUDITOR),
        "b": IdentityContext(account_id="auditor_b", role=Role.AUDITOR),
    }


@pytest.fixture
def analyzed_contract(wf: WorkflowEngine, actors: dict[str, IdentityContext]) -> dict:
    return wf.upload_and_analyze(
        actors["client"],
        document=b"This lease agreement is made between the landlord and the tenant.",
        file_name="lease.txt",
        title="Flat lease",
    )
