from __future__ import annotations

import threading

import pytest

from contract_review.analysis import MockAnalyzer
from contract_review.errors import ApiError
from contract_review.models import IdentityContext, Role
from contract_review.settings import EngineSettings
from contract_review.store import InMemoryVersionedStore
from contract_review.workflow import WorkflowEngine


class InterleavingStore(InMemoryVersionedStore):
    """Runs ``before_commit`` once, right before the next commit, to force a race."""

    def __init__(self) -> None:
        super().__init__()
        self.before_commit = None

    def commit_if(self, *, writes, expected_versions):
        hook, self.before_commit = self.before_commit, None
        if hook is not None:
            hook()
        return super().commit_if(writes=writes, expected_versions=expected_versions)


CLIENT = IdentityContext(account_id="client_1", role=Role.CLIENT)
AUDITOR = IdentityContext(account_id="auditor_a", role=Role.AUDITOR)


@pytest.fixture
def racing() -> WorkflowEngine:
    engine = WorkflowEngine(
        store=InterleavingStore(),
        analyzer=MockAnalyzer(),
        settings=EngineSettings(tx_max_attempts=50),
    )
    engine.create_account(account_id="auditor_a", role="auditor", display_name="Auditor A")
    return engine


def _balance(engine: WorkflowEngine, account_id: str) -> int:
    return engine.accounts.load(engine.store, account_id)["credit_balance"]


def test_interleaved_double_accept_only_counts_once(racing):
    racing.create_account(account_id="client_1", role="client", display_name="Client", credit_balance=5)
    contract = racing.upload_and_analyze(CLIENT, document=b"service agreement", file_name="sa.txt")
    request = racing.request_review(CLIENT, contract["contract_id"], auditor_id="auditor_a")

    racing.store.before_commit = lambda: racing.accept_review(AUDITOR, request["request_id"])
    with pytest.raises(ApiError) as exc:
        racing.accept_review(AUDITOR, request["request_id"])

    assert exc.value.code == "REVIEW_REQUEST_NOT_PENDING"
    assert racing.accounts.load(racing.store, "auditor_a")["current_active_contracts"] == 1
    assert racing.review_requests.load(racing.store, request["request_id"])["status"] == "accepted"


def test_interleaved_uploads_never_overdraw(racing):
    racing.create_account(account_id="client_1", role="client", display_name="Client", credit_balance=1)

    racing.store.before_commit = lambda: racing.upload_and_analyze(
        CLIENT, document=b"second document", file_name="b.txt"
    )
    with pytest.raises(ApiError) as exc:
        racing.upload_and_analyze(CLIENT, document=b"first document", file_name="a.txt")

    assert exc.value.code == "LEDGER_INSUFFICIENT_BALANCE"
    assert _balance(racing, "client_1") == 0
    assert [row["file_name"] for row in racing.list_contracts(CLIENT)] == ["b.txt"]


def test_interleaved_chat_messages_spend_balance_once(racing):
    racing.create_account(account_id="client_1", role="client", display_name="Client", credit_balance=4)
    contract = racing.upload_and_analyze(CLIENT, document=b"nda", file_name="nda.txt")
    contract_id = contract["contract_id"]
    racing.request_review(CLIENT, contract_id, auditor_id="auditor_a")

    racing.store.before_commit = lambda: racing.send_chat_message(CLIENT, contract_id, text="racer")
    with pytest.raises(ApiError) as exc:
        racing.send_chat_message(CLIENT, contract_id, text="loser")

    assert exc.value.code == "LEDGER_INSUFFICIENT_BALANCE"
    messages = racing.list_chat_messages(CLIENT, contract_id)
    assert [row["text"] for row in messages] == ["racer"]
    assert _balance(racing, "client_1") == 0
    assert _balance(racing, "auditor_a") == 1


def test_threaded_chat_keeps_balances_and_sequence_consistent():
    engine = WorkflowEngine(
        store=InMemoryVersionedStore(),
        analyzer=MockAnalyzer(),
        settings=EngineSettings(tx_max_attempts=100),
    )
    engine.create_account(account_id="auditor_a", role="auditor", display_name="Auditor A")
    engine.create_account(account_id="client_1", role="client", display_name="Client", credit_balance=16)
    contract_id = engine.upload_and_analyze(CLIENT, document=b"loan", file_name="loan.txt")["contract_id"]
    engine.request_review(CLIENT, contract_id, auditor_id="auditor_a")

    workers = 8
    barrier = threading.Barrier(workers)
    outcomes: list[str] = []
    lock = threading.Lock()

    def send(index: int) -> None:
        barrier.wait()
        try:
            engine.send_chat_message(CLIENT, contract_id, text=f"message {index}")
            outcome = "ok"
        except ApiError as exc:
            outcome = exc.code
        with lock:
            outcomes.append(outcome)

    threads = [threading.Thread(target=send, args=(index,)) for index in range(workers)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    sent = outcomes.count("ok")
    assert set(outcomes) <= {"ok", "LEDGER_INSUFFICIENT_BALANCE", "TX_CONFLICT"}
    assert sent <= 5
    assert _balance(engine, "client_1") == 15 - 3 * sent
    assert _balance(engine, "auditor_a") == sent
    messages = engine.list_chat_messages(CLIENT, contract_id)
    assert [row["seq"] for row in messages] == list(range(1, sent + 1))


def test_threaded_accepts_by_same_auditor_commit_once():
    engine = WorkflowEngine(
        store=InMemoryVersionedStore(),
        analyzer=MockAnalyzer(),
        settings=EngineSettings(tx_max_attempts=100),
    )
    engine.create_account(account_id="auditor_a", role="auditor", display_name="Auditor A")
    engine.create_account(account_id="client_1", role="client", display_name="Client", credit_balance=2)
    contract_id = engine.upload_and_analyze(CLIENT, document=b"lease", file_name="lease.txt")["contract_id"]
    request_id = engine.request_review(CLIENT, contract_id, auditor_id="auditor_a")["request_id"]

    workers = 6
    barrier = threading.Barrier(workers)
    outcomes: list[str] = []
    lock = threading.Lock()

    def accept() -> None:
        barrier.wait()
        try:
            engine.accept_review(AUDITOR, request_id)
            outcome = "ok"
        except ApiError as exc:
            outcome = exc.code
        with lock:
            outcomes.append(outcome)

    threads = [threading.Thread(target=accept) for _ in range(workers)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert outcomes.count("ok") == 1
    assert set(outcomes) <= {"ok", "REVIEW_REQUEST_NOT_PENDING", "TX_CONFLICT"}
    assert engine.accounts.load(engine.store, "auditor_a")["current_active_contracts"] == 1
