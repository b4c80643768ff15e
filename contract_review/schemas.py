from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field


class ContractRenameRequest(BaseModel):
    title: str = Field(min_length=1, max_length=200)


class ReviewRequestCreateRequest(BaseModel):
    auditor_id: str = Field(min_length=1)
    budget: float | None = Field(default=None, ge=0)
    client_concerns: str = ""
    share_summary: bool = False


class FinalizeReviewRequest(BaseModel):
    verdict: Literal["Approved", "Approved with Revisions", "Action Required"]
    feedback: str = Field(min_length=1)


class AuditorNoteRequest(BaseModel):
    feedback: str = Field(min_length=1)


class ChatMessageRequest(BaseModel):
    text: str = Field(min_length=1, max_length=4000)


class AccountCreateRequest(BaseModel):
    account_id: str | None = None
    display_name: str = Field(min_length=1)
    email: str = ""
    role: Literal["client", "auditor", "admin"]
    credit_balance: int = Field(default=0, ge=0)
    max_active_contracts: int | None = Field(default=None, ge=1)


class AddCreditsRequest(BaseModel):
    amount: int = Field(gt=0)


def success_envelope(data: Any, trace_id: str, message: str = "ok") -> dict[str, Any]:
    return {
        "success": True,
        "data": data,
        "message": message,
        "meta": {
            "trace_id": trace_id,
        },
    }


def error_envelope(
    *,
    code: str,
    message: str,
    error_class: str,
    retryable: bool,
    trace_id: str,
    details: dict[str, Any] | None = None,
) -> dict[str, Any]:
    error: dict[str, Any] = {
        "code": code,
        "message": message,
        "retryable": retryable,
        "class": error_class,
    }
    if details is not None:
        error["details"] = details
    return {
        "success": False,
        "error": error,
        "meta": {
            "trace_id": trace_id,
        },
    }
