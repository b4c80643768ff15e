from __future__ import annotations

import pytest

from contract_review.analysis import FailingAnalyzer
from contract_review.errors import ApiError
from contract_review.models import IdentityContext, Role

DOCUMENT = b"Supplier shall deliver the goods within thirty days of the purchase order."


def _balance(wf, account_id: str) -> int:
    return wf.accounts.load(wf.store, account_id)["credit_balance"]


def test_upload_debits_analysis_cost_and_completes_contract(wf, actors):
    contract = wf.upload_and_analyze(actors["client"], document=DOCUMENT, file_name="supply.txt")

    assert contract["status"] == "Completed"
    assert contract["title"] == "supply.txt"
    assert contract["owner_id"] == "client_1"
    report = contract["analysis_report"]
    assert 0 <= report["risk_score"] <= 100
    assert report["severity"] in {"Low", "Medium", "High", "Critical"}
    assert _balance(wf, "client_1") == 9

    entry = wf.ledger.list_entries(wf.store, "client_1")[-1]
    assert entry["reason"] == "analysis"
    assert entry["delta"] == -1
    assert entry["contract_id"] == contract["contract_id"]


def test_upload_with_insufficient_balance_is_refused(wf, actors):
    wf.create_account(account_id="client_broke", role="client", display_name="Broke")
    broke = IdentityContext(account_id="client_broke", role=Role.CLIENT)
    with pytest.raises(ApiError) as exc:
        wf.upload_and_analyze(broke, document=DOCUMENT, file_name="supply.txt")

    assert exc.value.code == "LEDGER_INSUFFICIENT_BALANCE"
    assert wf.list_contracts(broke) == []


def test_analysis_failure_charges_nothing(wf, actors):
    wf.analyzer = FailingAnalyzer("provider down")

    with pytest.raises(ApiError) as exc:
        wf.upload_and_analyze(actors["client"], document=DOCUMENT, file_name="supply.txt")

    assert exc.value.code == "ANALYSIS_UNAVAILABLE"
    assert exc.value.http_status == 503
    assert _balance(wf, "client_1") == 10
    assert wf.list_contracts(actors["client"]) == []


def test_unexpected_analyzer_error_maps_to_unavailable(wf, actors):
    class Broken:
        def analyze(self, document, *, file_name):
            raise KeyError("boom")

    wf.analyzer = Broken()
    with pytest.raises(ApiError) as exc:
        wf.upload_and_analyze(actors["client"], document=DOCUMENT, file_name="supply.txt")
    assert exc.value.code == "ANALYSIS_UNAVAILABLE"
    assert _balance(wf, "client_1") == 10


def test_only_clients_can_upload(wf, actors):
    with pytest.raises(ApiError) as exc:
        wf.upload_and_analyze(actors["a"], document=DOCUMENT, file_name="supply.txt")
    assert exc.value.code == "AUTH_FORBIDDEN"


def test_upload_validates_document_and_file_name(wf, actors):
    with pytest.raises(ApiError) as exc:
        wf.upload_and_analyze(actors["client"], document=b"", file_name="supply.txt")
    assert exc.value.code == "REQ_VALIDATION_FAILED"
    with pytest.raises(ApiError) as exc:
        wf.upload_and_analyze(actors["client"], document=DOCUMENT, file_name=" ")
    assert exc.value.code == "REQ_VALIDATION_FAILED"


def test_idempotent_upload_replays_without_second_charge(wf, actors):
    first = wf.upload_and_analyze(
        actors["client"], document=DOCUMENT, file_name="supply.txt", idempotency_key="idem_upload_1"
    )
    second = wf.upload_and_analyze(
        actors["client"], document=DOCUMENT, file_name="supply.txt", idempotency_key="idem_upload_1"
    )

    assert second["contract_id"] == first["contract_id"]
    assert _balance(wf, "client_1") == 9
    assert len(wf.list_contracts(actors["client"])) == 1


def test_idempotency_key_reuse_with_different_document_conflicts(wf, actors):
    wf.upload_and_analyze(actors["client"], document=DOCUMENT, file_name="supply.txt", idempotency_key="idem_2")

    with pytest.raises(ApiError) as exc:
        wf.upload_and_analyze(
            actors["client"], document=b"another document", file_name="supply.txt", idempotency_key="idem_2"
        )
    assert exc.value.code == "IDEMPOTENCY_CONFLICT"
    assert _balance(wf, "client_1") == 9


def test_deleting_contract_releases_its_idempotency_key(wf, actors):
    first = wf.upload_and_analyze(
        actors["client"], document=DOCUMENT, file_name="supply.txt", idempotency_key="idem_del"
    )
    record_key = wf.idempotency.key("upload_and_analyze:client_1", "idem_del")
    assert first["idempotency_record"] == record_key

    wf.delete_contract(actors["client"], first["contract_id"])
    assert wf.store.read(record_key)[0] is None

    again = wf.upload_and_analyze(
        actors["client"], document=DOCUMENT, file_name="supply.txt", idempotency_key="idem_del"
    )
    assert again["contract_id"] != first["contract_id"]
    assert _balance(wf, "client_1") == 8
    replay = wf.upload_and_analyze(
        actors["client"], document=DOCUMENT, file_name="supply.txt", idempotency_key="idem_del"
    )
    assert replay["contract_id"] == again["contract_id"]


def test_mock_analysis_is_deterministic_per_document(wf, actors):
    first = wf.upload_and_analyze(actors["client"], document=DOCUMENT, file_name="a.txt")
    second = wf.upload_and_analyze(actors["client"], document=DOCUMENT, file_name="a.txt")
    assert first["contract_id"] != second["contract_id"]
    assert first["analysis_report"] == second["analysis_report"]


def test_contract_visibility(wf, actors, analyzed_contract):
    contract_id = analyzed_contract["contract_id"]

    assert wf.get_contract(actors["client"], contract_id)["contract_id"] == contract_id
    assert wf.get_contract(actors["admin"], contract_id)["contract_id"] == contract_id
    with pytest.raises(ApiError) as exc:
        wf.get_contract(actors["a"], contract_id)
    assert exc.value.code == "AUTH_FORBIDDEN"

    wf.request_review(actors["client"], contract_id, auditor_id="auditor_a")
    assert wf.get_contract(actors["a"], contract_id)["status"] == "In Review"
    assert [row["contract_id"] for row in wf.list_contracts(actors["a"])] == [contract_id]
    assert wf.list_contracts(actors["b"]) == []
    assert len(wf.list_contracts(actors["admin"])) == 1

    with pytest.raises(ApiError) as exc:
        wf.get_contract(actors["client"], "ctr_missing")
    assert exc.value.code == "CONTRACT_NOT_FOUND"


def test_rename_contract_is_owner_only(wf, actors, analyzed_contract):
    contract_id = analyzed_contract["contract_id"]

    renamed = wf.rename_contract(actors["client"], contract_id, title="  Apartment lease ")
    assert renamed["title"] == "Apartment lease"

    with pytest.raises(ApiError) as exc:
        wf.rename_contract(actors["a"], contract_id, title="mine now")
    assert exc.value.code == "AUTH_FORBIDDEN"
    with pytest.raises(ApiError) as exc:
        wf.rename_contract(actors["client"], contract_id, title="")
    assert exc.value.code == "REQ_VALIDATION_FAILED"


def test_delete_contract_removes_requests_but_is_blocked_during_review(wf, actors, analyzed_contract):
    contract_id = analyzed_contract["contract_id"]
    request = wf.request_review(actors["client"], contract_id, auditor_id="auditor_a")

    with pytest.raises(ApiError) as exc:
        wf.delete_contract(actors["client"], contract_id)
    assert exc.value.code == "CONTRACT_DELETE_BLOCKED"

    wf.reject_review(actors["a"], request["request_id"])
    result = wf.delete_contract(actors["client"], contract_id)

    assert result["deleted"] is True
    assert result["deleted_request_ids"] == [request["request_id"]]
    assert wf.contracts.load(wf.store, contract_id) is None
    assert wf.review_requests.load(wf.store, request["request_id"]) is None


def test_delete_is_blocked_while_pending_approval(wf, actors, analyzed_contract):
    contract_id = analyzed_contract["contract_id"]
    request = wf.request_review(actors["client"], contract_id, auditor_id="auditor_a")
    wf.accept_review(actors["a"], request["request_id"])
    wf.finalize_review(actors["a"], contract_id, verdict="Action Required", feedback="Do not sign yet.")

    with pytest.raises(ApiError) as exc:
        wf.delete_contract(actors["client"], contract_id)
    assert exc.value.code == "CONTRACT_DELETE_BLOCKED"


def test_share_report_is_stable_and_public(wf, actors, analyzed_contract):
    contract_id = analyzed_contract["contract_id"]

    first = wf.share_report(actors["client"], contract_id)
    second = wf.share_report(actors["client"], contract_id)

    assert first["created"] is True
    assert second == {"report_id": first["report_id"], "created": False}
    report = wf.get_public_report(first["report_id"])
    assert report["contract_id"] == contract_id
    assert report["analysis"] == analyzed_contract["analysis_report"]

    with pytest.raises(ApiError) as exc:
        wf.share_report(actors["a"], contract_id)
    assert exc.value.code == "AUTH_FORBIDDEN"
    with pytest.raises(ApiError) as exc:
        wf.get_public_report("rpt_missing")
    assert exc.value.code == "PUBLIC_REPORT_NOT_FOUND"
