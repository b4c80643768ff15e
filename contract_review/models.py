from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class Role(str, Enum):
    CLIENT = "client"
    AUDITOR = "auditor"
    ADMIN = "admin"


class ContractStatus(str, Enum):
    PENDING = "Pending"
    IN_REVIEW = "In Review"
    ACTION_REQUIRED = "Action Required"
    PENDING_APPROVAL = "Pending Approval"
    COMPLETED = "Completed"


class ReviewStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class Verdict(str, Enum):
    APPROVED = "Approved"
    APPROVED_WITH_REVISIONS = "Approved with Revisions"
    ACTION_REQUIRED = "Action Required"


class LedgerReason(str, Enum):
    ANALYSIS = "analysis"
    CHAT_FEE = "chat_fee"
    CHAT_REWARD = "chat_reward"
    TOP_UP = "top_up"


# trigger -> {from status: to status}; a trigger not listed for the current
# status is an invalid transition. Reject lands in In Review or Action
# Required depending on the remaining auditors, so it lists both targets.
ALLOWED_TRANSITIONS: dict[str, dict[str, set[str]]] = {
    "upload_and_analyze": {
        ContractStatus.PENDING.value: {ContractStatus.COMPLETED.value},
    },
    "request_review": {
        ContractStatus.PENDING.value: {ContractStatus.IN_REVIEW.value},
        ContractStatus.COMPLETED.value: {ContractStatus.IN_REVIEW.value},
        ContractStatus.ACTION_REQUIRED.value: {ContractStatus.IN_REVIEW.value},
        ContractStatus.IN_REVIEW.value: {ContractStatus.IN_REVIEW.value},
    },
    "accept_review": {
        ContractStatus.IN_REVIEW.value: {ContractStatus.IN_REVIEW.value},
    },
    "reject_review": {
        ContractStatus.IN_REVIEW.value: {ContractStatus.IN_REVIEW.value, ContractStatus.ACTION_REQUIRED.value},
    },
    "add_auditor_note": {
        ContractStatus.IN_REVIEW.value: {ContractStatus.IN_REVIEW.value},
    },
    "finalize_review": {
        ContractStatus.IN_REVIEW.value: {ContractStatus.PENDING_APPROVAL.value},
    },
    "approve_completion": {
        ContractStatus.PENDING_APPROVAL.value: {ContractStatus.COMPLETED.value},
    },
    "request_revisions": {
        ContractStatus.PENDING_APPROVAL.value: {ContractStatus.IN_REVIEW.value},
    },
}


@dataclass(frozen=True)
class IdentityContext:
    account_id: str
    role: Role

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN
