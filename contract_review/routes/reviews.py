from __future__ import annotations

from fastapi import APIRouter, Query, Request
from fastapi.responses import JSONResponse

from contract_review.routes._deps import identity_from_request, trace_id_from_request
from contract_review.schemas import (
    AuditorNoteRequest,
    FinalizeReviewRequest,
    ReviewRequestCreateRequest,
    success_envelope,
)
from contract_review.workflow import engine

router = APIRouter(prefix="/api/v1", tags=["reviews"])


@router.post("/contracts/{contract_id}/review-requests")
def request_review(contract_id: str, payload: ReviewRequestCreateRequest, request: Request):
    data = engine.request_review(
        identity_from_request(request),
        contract_id,
        auditor_id=payload.auditor_id,
        budget=payload.budget,
        client_concerns=payload.client_concerns,
        share_summary=payload.share_summary,
    )
    return JSONResponse(
        status_code=201,
        content=success_envelope(data, trace_id_from_request(request)),
    )


@router.get("/contracts/{contract_id}/review-requests")
def list_contract_review_requests(contract_id: str, request: Request):
    data = engine.list_contract_review_requests(identity_from_request(request), contract_id)
    return success_envelope({"items": data, "total": len(data)}, trace_id_from_request(request))


@router.get("/review-requests")
def list_review_queue(
    request: Request,
    status: str | None = Query(default="pending"),
):
    data = engine.list_review_queue(identity_from_request(request), status=status)
    return success_envelope({"items": data, "total": len(data)}, trace_id_from_request(request))


@router.post("/review-requests/{request_id}/accept")
def accept_review(request_id: str, request: Request):
    data = engine.accept_review(identity_from_request(request), request_id)
    return success_envelope(data, trace_id_from_request(request))


@router.post("/review-requests/{request_id}/reject")
def reject_review(request_id: str, request: Request):
    data = engine.reject_review(identity_from_request(request), request_id)
    return success_envelope(data, trace_id_from_request(request))


@router.post("/contracts/{contract_id}/finalize")
def finalize_review(contract_id: str, payload: FinalizeReviewRequest, request: Request):
    data = engine.finalize_review(
        identity_from_request(request),
        contract_id,
        verdict=payload.verdict,
        feedback=payload.feedback,
    )
    return success_envelope(data, trace_id_from_request(request))


@router.post("/contracts/{contract_id}/notes")
def add_auditor_note(contract_id: str, payload: AuditorNoteRequest, request: Request):
    data = engine.add_auditor_note(identity_from_request(request), contract_id, feedback=payload.feedback)
    return success_envelope(data, trace_id_from_request(request))


@router.post("/contracts/{contract_id}/approve")
def approve_completion(contract_id: str, request: Request):
    data = engine.approve_completion(identity_from_request(request), contract_id)
    return success_envelope(data, trace_id_from_request(request))


@router.post("/contracts/{contract_id}/revisions")
def request_revisions(contract_id: str, request: Request):
    data = engine.request_revisions(identity_from_request(request), contract_id)
    return success_envelope(data, trace_id_from_request(request))
