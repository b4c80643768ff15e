from __future__ import annotations

import logging
import uuid
from typing import Any

from contract_review.errors import (
    AccountNotFound,
    AnalysisNotReady,
    AuditorAtCapacity,
    ContractNotFound,
    Forbidden,
    InvalidStateTransition,
    RequestNotPending,
    ReviewRequestNotFound,
    ValidationFailed,
)
from contract_review.models import ContractStatus, IdentityContext, ReviewStatus, Role, Verdict
from contract_review.store import utcnow_iso
from contract_review.transactions import Transaction

logger = logging.getLogger(__name__)


class WorkflowReviewsMixin:
    def request_review(
        self,
        identity: IdentityContext,
        contract_id: str,
        *,
        auditor_id: str,
        budget: float | None = None,
        client_concerns: str | None = None,
        share_summary: bool = False,
    ) -> dict[str, Any]:
        """Ask one auditor to review the contract; callable repeatedly to fan out to several auditors."""
        if budget is not None and budget < 0:
            raise ValidationFailed("budget must be non-negative")

        def fn(tx: Transaction) -> dict[str, Any]:
            contract = self._contract_in_tx(tx, contract_id)
            self._require_owner(identity, contract)
            report = contract.get("analysis_report")
            if not report:
                raise AnalysisNotReady()
            auditor = self.accounts.get(tx, auditor_id)
            if auditor is None:
                raise AccountNotFound()
            if auditor.get("role") != Role.AUDITOR.value:
                raise Forbidden("review can only be requested from an auditor account")
            self._guard_transition(contract, trigger="request_review")
            assigned = list(contract.get("assigned_auditor_ids") or [])
            if auditor_id in assigned:
                raise InvalidStateTransition(
                    "auditor is already assigned to this contract",
                    code="REVIEW_ALREADY_REQUESTED",
                )

            now = utcnow_iso()
            request = {
                "request_id": f"rr_{uuid.uuid4().hex[:12]}",
                "contract_id": contract_id,
                "contract_owner_id": contract["owner_id"],
                "client_id": identity.account_id,
                "auditor_id": auditor_id,
                "status": ReviewStatus.PENDING.value,
                "budget": budget,
                "client_concerns": (client_concerns or "").strip(),
                "share_ai_summary": bool(share_summary),
                "ai_summary": list(report.get("sanitized_summary_points") or []) if share_summary else [],
                "risk_score": report.get("risk_score"),
                "severity": report.get("severity"),
                "contract_title": contract.get("title"),
                "requested_at": now,
                "responded_at": None,
            }
            self.review_requests.create(tx, request)
            contract["assigned_auditor_ids"] = assigned + [auditor_id]
            contract["review_request_ids"] = list(contract.get("review_request_ids") or []) + [request["request_id"]]
            self._transition(contract, trigger="request_review", to_status=ContractStatus.IN_REVIEW)
            self.contracts.put(tx, contract)
            return request

        return self._run("request_review", fn)

    def _pending_request_in_tx(self, tx: Transaction, identity: IdentityContext, request_id: str) -> dict[str, Any]:
        request = self.review_requests.get(tx, request_id)
        if request is None:
            raise ReviewRequestNotFound()
        if request.get("auditor_id") != identity.account_id:
            raise Forbidden("only the requested auditor can respond to this review request")
        if request.get("status") != ReviewStatus.PENDING.value:
            raise RequestNotPending(f"review request is already {request.get('status')}")
        return request

    def accept_review(self, identity: IdentityContext, request_id: str) -> dict[str, Any]:
        self._require_role(identity, Role.AUDITOR)

        def fn(tx: Transaction) -> dict[str, Any]:
            request = self._pending_request_in_tx(tx, identity, request_id)
            contract = self._contract_in_tx(tx, str(request["contract_id"]))
            auditor = self.accounts.get(tx, identity.account_id)
            if auditor is None:
                raise AccountNotFound()
            self._guard_transition(contract, trigger="accept_review")
            current = int(auditor.get("current_active_contracts", 0))
            limit = int(auditor.get("max_active_contracts", self.settings.default_max_active_contracts))
            if self.settings.enforce_auditor_capacity and current >= limit:
                raise AuditorAtCapacity(f"auditor has {current} of {limit} active contracts")

            request["status"] = ReviewStatus.ACCEPTED.value
            request["responded_at"] = utcnow_iso()
            auditor["current_active_contracts"] = current + 1
            self._transition(contract, trigger="accept_review", to_status=ContractStatus.IN_REVIEW)
            self.review_requests.put(tx, request)
            self.accounts.put(tx, auditor)
            self.contracts.put(tx, contract)
            return request

        return self._run("accept_review", fn)

    def reject_review(self, identity: IdentityContext, request_id: str) -> dict[str, Any]:
        """Decline a request; the contract falls back to Action Required once no auditor is left."""
        self._require_role(identity, Role.AUDITOR)

        def fn(tx: Transaction) -> dict[str, Any]:
            request = self._pending_request_in_tx(tx, identity, request_id)
            contract = self._contract_in_tx(tx, str(request["contract_id"]))
            self._guard_transition(contract, trigger="reject_review")

            request["status"] = ReviewStatus.REJECTED.value
            request["responded_at"] = utcnow_iso()
            remaining = [
                auditor_id
                for auditor_id in contract.get("assigned_auditor_ids") or []
                if auditor_id != identity.account_id
            ]
            contract["assigned_auditor_ids"] = remaining
            target = ContractStatus.IN_REVIEW if remaining else ContractStatus.ACTION_REQUIRED
            self._transition(contract, trigger="reject_review", to_status=target)
            self.review_requests.put(tx, request)
            self.contracts.put(tx, contract)
            return request

        return self._run("reject_review", fn)

    def _accepted_auditor_guard(self, tx: Transaction, identity: IdentityContext, contract: dict[str, Any]) -> None:
        if identity.account_id not in (contract.get("assigned_auditor_ids") or []):
            raise Forbidden("only an assigned auditor can perform this operation")
        requests = self.review_requests.get_many(tx, list(contract.get("review_request_ids") or []))
        if not any(
            row.get("auditor_id") == identity.account_id and row.get("status") == ReviewStatus.ACCEPTED.value
            for row in requests
        ):
            raise Forbidden("auditor has not accepted a review request for this contract")

    def finalize_review(
        self,
        identity: IdentityContext,
        contract_id: str,
        *,
        verdict: str,
        feedback: str,
    ) -> dict[str, Any]:
        self._require_role(identity, Role.AUDITOR)
        try:
            verdict_value = Verdict(verdict).value
        except ValueError:
            allowed = ", ".join(item.value for item in Verdict)
            raise ValidationFailed(f"verdict must be one of: {allowed}")
        feedback = self._require_text(feedback, "feedback")

        def fn(tx: Transaction) -> dict[str, Any]:
            contract = self._contract_in_tx(tx, contract_id)
            self._accepted_auditor_guard(tx, identity, contract)
            auditor = self.accounts.get(tx, identity.account_id)
            if auditor is None:
                raise AccountNotFound()
            contract["final_feedback"] = {
                "verdict": verdict_value,
                "feedback": feedback,
                "auditor_id": identity.account_id,
                "auditor_name": auditor.get("display_name"),
                "submitted_at": utcnow_iso(),
            }
            self._transition(contract, trigger="finalize_review", to_status=ContractStatus.PENDING_APPROVAL)
            return self.contracts.put(tx, contract)

        return self._run("finalize_review", fn)

    def add_auditor_note(self, identity: IdentityContext, contract_id: str, *, feedback: str) -> dict[str, Any]:
        self._require_role(identity, Role.AUDITOR)
        feedback = self._require_text(feedback, "feedback")

        def fn(tx: Transaction) -> dict[str, Any]:
            contract = self._contract_in_tx(tx, contract_id)
            if identity.account_id not in (contract.get("assigned_auditor_ids") or []):
                raise Forbidden("only an assigned auditor can add review notes")
            self._guard_transition(contract, trigger="add_auditor_note")
            note = {
                "note_id": f"note_{uuid.uuid4().hex[:12]}",
                "auditor_id": identity.account_id,
                "feedback": feedback,
                "created_at": utcnow_iso(),
            }
            contract["auditor_feedback"] = list(contract.get("auditor_feedback") or []) + [note]
            contract["updated_at"] = note["created_at"]
            return self.contracts.put(tx, contract)

        return self._run("add_auditor_note", fn)

    def approve_completion(self, identity: IdentityContext, contract_id: str) -> dict[str, Any]:
        """Close the review: release auditor capacity, drop accepted requests, clear assignments.

        Requests still pending at this point are closed as rejected.
        """

        def fn(tx: Transaction) -> dict[str, Any]:
            contract = self._contract_in_tx(tx, contract_id)
            self._require_owner(identity, contract)
            self._guard_transition(contract, trigger="approve_completion")
            requests = self.review_requests.get_many(tx, list(contract.get("review_request_ids") or []))
            accepted = [row for row in requests if row.get("status") == ReviewStatus.ACCEPTED.value]
            auditors = self.accounts.get_many(tx, list(dict.fromkeys(str(row["auditor_id"]) for row in accepted)))

            now = utcnow_iso()
            for auditor in auditors.values():
                auditor["current_active_contracts"] = max(0, int(auditor.get("current_active_contracts", 0)) - 1)
                self.accounts.put(tx, auditor)
            kept_ids: list[str] = []
            for row in requests:
                if row.get("status") == ReviewStatus.ACCEPTED.value:
                    self.review_requests.delete(tx, str(row["request_id"]))
                    continue
                if row.get("status") == ReviewStatus.PENDING.value:
                    row["status"] = ReviewStatus.REJECTED.value
                    row["responded_at"] = now
                    row["closed_reason"] = "contract_completed"
                    self.review_requests.put(tx, row)
                kept_ids.append(str(row["request_id"]))
            contract["review_request_ids"] = kept_ids
            contract["assigned_auditor_ids"] = []
            self._transition(contract, trigger="approve_completion", to_status=ContractStatus.COMPLETED)
            return self.contracts.put(tx, contract)

        contract = self._run("approve_completion", fn)
        logger.info("review_completed contract_id=%s owner_id=%s", contract_id, identity.account_id)
        return contract

    def request_revisions(self, identity: IdentityContext, contract_id: str) -> dict[str, Any]:
        """Send a Pending Approval contract back to its auditors; ``final_feedback`` stays until overwritten."""

        def fn(tx: Transaction) -> dict[str, Any]:
            contract = self._contract_in_tx(tx, contract_id)
            self._require_owner(identity, contract)
            self._transition(contract, trigger="request_revisions", to_status=ContractStatus.IN_REVIEW)
            return self.contracts.put(tx, contract)

        return self._run("request_revisions", fn)

    def list_review_queue(self, identity: IdentityContext, *, status: str | None = "pending") -> list[dict[str, Any]]:
        self._require_role(identity, Role.AUDITOR)
        if status is not None and status not in {item.value for item in ReviewStatus}:
            raise ValidationFailed(f"unknown review request status: {status}")
        return self.review_requests.list_for_auditor(self.store, auditor_id=identity.account_id, status=status)

    def list_contract_review_requests(self, identity: IdentityContext, contract_id: str) -> list[dict[str, Any]]:
        contract = self.contracts.load(self.store, contract_id)
        if contract is None:
            raise ContractNotFound()
        if not identity.is_admin and contract.get("owner_id") != identity.account_id:
            raise Forbidden("only the contract owner can list its review requests")
        return self.review_requests.list_for_contract(self.store, contract_id=contract_id)
