"""Contract review workflow engine.

Every state-changing operation runs as one optimistic transaction through
:func:`~contract_review.transactions.run_transaction`: all reads first, then
the guards, then the staged writes. Guard failures raise typed
:class:`~contract_review.errors.ApiError` subclasses before anything is
written; only store conflicts are retried.
"""

from __future__ import annotations

import hashlib
import logging
import uuid
from collections.abc import Callable
from typing import Any, TypeVar

from contract_review.analysis import Analyzer, create_analyzer_from_env
from contract_review.errors import (
    AccountNotFound,
    AnalysisNotReady,
    AnalysisUnavailable,
    ContractNotFound,
    Forbidden,
    InsufficientBalance,
    InvalidStateTransition,
    PublicReportNotFound,
    ValidationFailed,
)
from contract_review.ledger import Ledger
from contract_review.models import ALLOWED_TRANSITIONS, ContractStatus, IdentityContext, LedgerReason, Role
from contract_review.repositories import (
    AccountsRepository,
    ChatMessagesRepository,
    ContractsRepository,
    IdempotencyRepository,
    PublicReportsRepository,
    ReviewRequestsRepository,
    fingerprint,
)
from contract_review.settings import EngineSettings
from contract_review.store import VersionedStore, store, utcnow_iso
from contract_review.transactions import Transaction, run_transaction
from contract_review.workflow_accounts import WorkflowAccountsMixin
from contract_review.workflow_chat import WorkflowChatMixin
from contract_review.workflow_reviews import WorkflowReviewsMixin

logger = logging.getLogger(__name__)

T = TypeVar("T")

_UPLOAD_SCOPE = "upload_and_analyze"


class WorkflowEngine(WorkflowReviewsMixin, WorkflowChatMixin, WorkflowAccountsMixin):
    def __init__(
        self,
        *,
        store: VersionedStore,
        analyzer: Analyzer,
        settings: EngineSettings | None = None,
    ) -> None:
        self.store = store
        self.analyzer = analyzer
        self.settings = settings or EngineSettings()
        self.accounts = AccountsRepository()
        self.contracts = ContractsRepository()
        self.review_requests = ReviewRequestsRepository()
        self.chat = ChatMessagesRepository()
        self.public_reports = PublicReportsRepository()
        self.idempotency = IdempotencyRepository()
        self.ledger = Ledger(self.accounts)

    def reset(
        self,
        *,
        settings: EngineSettings | None = None,
        analyzer: Analyzer | None = None,
    ) -> None:
        self.store.reset()
        self.settings = settings or EngineSettings.from_env()
        if analyzer is not None:
            self.analyzer = analyzer

    def _run(self, operation: str, fn: Callable[[Transaction], T]) -> T:
        return run_transaction(
            self.store,
            fn,
            max_attempts=self.settings.tx_max_attempts,
            operation=operation,
        )

    @staticmethod
    def _require_role(identity: IdentityContext, *roles: Role) -> None:
        if identity.role not in roles:
            allowed = ", ".join(role.value for role in roles)
            raise Forbidden(f"operation requires role: {allowed}")

    @staticmethod
    def _require_owner(identity: IdentityContext, contract: dict[str, Any]) -> None:
        if contract.get("owner_id") != identity.account_id:
            raise Forbidden("only the contract owner can perform this operation")

    @staticmethod
    def _require_text(value: str | None, field: str) -> str:
        text = (value or "").strip()
        if not text:
            raise ValidationFailed(f"{field} must not be empty")
        return text

    def _contract_in_tx(self, tx: Transaction, contract_id: str) -> dict[str, Any]:
        contract = self.contracts.get(tx, contract_id)
        if contract is None:
            raise ContractNotFound()
        return contract

    @staticmethod
    def _transition(contract: dict[str, Any], *, trigger: str, to_status: ContractStatus) -> None:
        current = str(contract.get("status"))
        allowed = ALLOWED_TRANSITIONS.get(trigger, {}).get(current, set())
        if to_status.value not in allowed:
            raise InvalidStateTransition(f"invalid transition: {current} -> {to_status.value} via {trigger}")
        contract["status"] = to_status.value
        contract["updated_at"] = utcnow_iso()
        logger.info(
            "contract_transition contract_id=%s trigger=%s from=%s to=%s",
            contract.get("contract_id"),
            trigger,
            current,
            to_status.value,
        )

    @staticmethod
    def _guard_transition(contract: dict[str, Any], *, trigger: str) -> None:
        current = str(contract.get("status"))
        if current not in ALLOWED_TRANSITIONS.get(trigger, {}):
            raise InvalidStateTransition(f"{trigger} is not allowed while contract is {current}")

    def _can_view_contract(self, identity: IdentityContext, contract: dict[str, Any]) -> bool:
        return (
            identity.is_admin
            or contract.get("owner_id") == identity.account_id
            or identity.account_id in (contract.get("assigned_auditor_ids") or [])
        )

    def upload_and_analyze(
        self,
        identity: IdentityContext,
        *,
        document: bytes,
        file_name: str,
        title: str | None = None,
        idempotency_key: str | None = None,
    ) -> dict[str, Any]:
        """Analyze a document and store it as a new Completed contract, charging the analysis cost.

        The analyzer runs before the transaction. If the balance no longer
        covers the cost by commit time the report is discarded and nothing is
        charged.
        """
        self._require_role(identity, Role.CLIENT)
        file_name = self._require_text(file_name, "file_name")
        if not document:
            raise ValidationFailed("document must not be empty")
        title = (title or "").strip() or file_name
        cost = self.settings.analysis_cost
        payload_fingerprint = fingerprint(
            {
                "owner_id": identity.account_id,
                "file_name": file_name,
                "title": title,
                "document_sha256": hashlib.sha256(document).hexdigest(),
            }
        )
        scope = f"{_UPLOAD_SCOPE}:{identity.account_id}"

        if idempotency_key:
            replay = self.idempotency.lookup(
                self.store,
                scope=scope,
                idempotency_key=idempotency_key,
                payload_fingerprint=payload_fingerprint,
            )
            if replay is not None:
                return self._replay_upload(replay)

        account = self.accounts.load(self.store, identity.account_id)
        if account is None:
            raise AccountNotFound()
        balance = int(account.get("credit_balance", 0))
        if balance < cost:
            raise InsufficientBalance(f"balance {balance} is below the required {cost} credits")

        try:
            report = self.analyzer.analyze(document, file_name=file_name)
        except AnalysisUnavailable:
            raise
        except Exception as exc:
            logger.warning("analysis_failed owner_id=%s error=%s", identity.account_id, type(exc).__name__)
            raise AnalysisUnavailable(f"analysis failed: {type(exc).__name__}") from exc
        report_data = report.model_dump()

        def fn(tx: Transaction) -> dict[str, Any]:
            if idempotency_key:
                replayed = self.idempotency.lookup_in_tx(
                    tx,
                    scope=scope,
                    idempotency_key=idempotency_key,
                    payload_fingerprint=payload_fingerprint,
                )
                if replayed is not None:
                    return {"replay": replayed}
            if self.accounts.get(tx, identity.account_id) is None:
                raise AccountNotFound()

            now = utcnow_iso()
            contract = {
                "contract_id": f"ctr_{uuid.uuid4().hex[:12]}",
                "owner_id": identity.account_id,
                "title": title,
                "file_name": file_name,
                "document_sha256": hashlib.sha256(document).hexdigest(),
                "document_size": len(document),
                "status": ContractStatus.PENDING.value,
                "analysis_report": None,
                "assigned_auditor_ids": [],
                "review_request_ids": [],
                "final_feedback": None,
                "auditor_feedback": [],
                "public_report_id": None,
                "idempotency_record": self.idempotency.key(scope, idempotency_key) if idempotency_key else None,
                "created_at": now,
                "updated_at": now,
            }
            self.ledger.debit(
                tx,
                identity.account_id,
                cost,
                reason=LedgerReason.ANALYSIS.value,
                contract_id=contract["contract_id"],
            )
            contract["analysis_report"] = report_data
            self._transition(contract, trigger="upload_and_analyze", to_status=ContractStatus.COMPLETED)
            self.contracts.create(tx, contract)
            if idempotency_key:
                self.idempotency.record(
                    tx,
                    scope=scope,
                    idempotency_key=idempotency_key,
                    payload_fingerprint=payload_fingerprint,
                    data={"contract_id": contract["contract_id"]},
                )
            return {"contract": contract}

        result = self._run("upload_and_analyze", fn)
        if "replay" in result:
            return self._replay_upload(result["replay"])
        return result["contract"]

    def _replay_upload(self, data: dict[str, Any]) -> dict[str, Any]:
        contract = self.contracts.load(self.store, str(data.get("contract_id", "")))
        if contract is None:
            raise ContractNotFound()
        return contract

    def get_contract(self, identity: IdentityContext, contract_id: str) -> dict[str, Any]:
        contract = self.contracts.load(self.store, contract_id)
        if contract is None:
            raise ContractNotFound()
        if not self._can_view_contract(identity, contract):
            raise Forbidden("contract is not visible to this account")
        return contract

    def list_contracts(self, identity: IdentityContext) -> list[dict[str, Any]]:
        if identity.role == Role.CLIENT:
            return self.contracts.list_for_owner(self.store, owner_id=identity.account_id)
        if identity.role == Role.AUDITOR:
            return self.contracts.list_for_auditor(self.store, auditor_id=identity.account_id)
        return self.contracts.list_all(self.store)

    def rename_contract(self, identity: IdentityContext, contract_id: str, *, title: str) -> dict[str, Any]:
        title = self._require_text(title, "title")

        def fn(tx: Transaction) -> dict[str, Any]:
            contract = self._contract_in_tx(tx, contract_id)
            self._require_owner(identity, contract)
            contract["title"] = title
            contract["updated_at"] = utcnow_iso()
            return self.contracts.put(tx, contract)

        return self._run("rename_contract", fn)

    def delete_contract(self, identity: IdentityContext, contract_id: str) -> dict[str, Any]:
        """Delete a contract and its review requests.

        Refused while the review is live: In Review with a pending or accepted
        request, or Pending Approval. The idempotency record of the creating
        upload goes too, so replaying its key uploads afresh. The chat log and
        any shared public report stay in place.
        """

        def fn(tx: Transaction) -> dict[str, Any]:
            contract = self._contract_in_tx(tx, contract_id)
            self._require_owner(identity, contract)
            requests = self.review_requests.get_many(tx, list(contract.get("review_request_ids") or []))
            status = contract.get("status")
            record_key = contract.get("idempotency_record")
            if record_key and self.idempotency.get_record(tx, record_key) is None:
                record_key = None
            live = [row for row in requests if row.get("status") in {"pending", "accepted"}]
            if status == ContractStatus.PENDING_APPROVAL.value or (status == ContractStatus.IN_REVIEW.value and live):
                raise InvalidStateTransition(
                    f"contract cannot be deleted while {status}",
                    code="CONTRACT_DELETE_BLOCKED",
                )
            for row in requests:
                self.review_requests.delete(tx, str(row["request_id"]))
            self.contracts.delete(tx, contract_id)
            if record_key:
                self.idempotency.delete(tx, record_key)
            return {"contract_id": contract_id, "deleted": True, "deleted_request_ids": [r["request_id"] for r in requests]}

        result = self._run("delete_contract", fn)
        logger.info("contract_deleted contract_id=%s owner_id=%s", contract_id, identity.account_id)
        return result

    def share_report(self, identity: IdentityContext, contract_id: str) -> dict[str, Any]:
        def fn(tx: Transaction) -> dict[str, Any]:
            contract = self._contract_in_tx(tx, contract_id)
            self._require_owner(identity, contract)
            if not contract.get("analysis_report"):
                raise AnalysisNotReady()
            existing = contract.get("public_report_id")
            if existing:
                return {"report_id": existing, "created": False}
            report = {
                "report_id": f"rpt_{uuid.uuid4().hex[:12]}",
                "contract_id": contract_id,
                "owner_id": contract["owner_id"],
                "contract_title": contract.get("title"),
                "analysis": contract["analysis_report"],
                "created_at": utcnow_iso(),
            }
            self.public_reports.create(tx, report)
            contract["public_report_id"] = report["report_id"]
            contract["updated_at"] = utcnow_iso()
            self.contracts.put(tx, contract)
            return {"report_id": report["report_id"], "created": True}

        return self._run("share_report", fn)

    def get_public_report(self, report_id: str) -> dict[str, Any]:
        report = self.public_reports.load(self.store, report_id)
        if report is None:
            raise PublicReportNotFound()
        return report


def create_engine_from_env() -> WorkflowEngine:
    return WorkflowEngine(
        store=store,
        analyzer=create_analyzer_from_env(),
        settings=EngineSettings.from_env(),
    )


engine = create_engine_from_env()
