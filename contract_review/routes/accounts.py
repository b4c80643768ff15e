from __future__ import annotations

from fastapi import APIRouter, Query, Request
from fastapi.responses import JSONResponse

from contract_review.routes._deps import identity_from_request, trace_id_from_request
from contract_review.schemas import AccountCreateRequest, AddCreditsRequest, success_envelope
from contract_review.workflow import engine

router = APIRouter(prefix="/api/v1", tags=["accounts"])


@router.post("/accounts")
def register_account(payload: AccountCreateRequest, request: Request):
    data = engine.register_account(identity_from_request(request), **payload.model_dump())
    return JSONResponse(
        status_code=201,
        content=success_envelope(data, trace_id_from_request(request)),
    )


@router.get("/accounts")
def list_accounts(request: Request, role: str | None = Query(default=None)):
    data = engine.list_accounts(identity_from_request(request), role=role)
    return success_envelope({"items": data, "total": len(data)}, trace_id_from_request(request))


@router.get("/auditors")
def list_auditors(request: Request):
    data = engine.list_auditors(identity_from_request(request))
    return success_envelope({"items": data, "total": len(data)}, trace_id_from_request(request))


@router.get("/accounts/{account_id}")
def get_account(account_id: str, request: Request):
    data = engine.get_account(identity_from_request(request), account_id)
    return success_envelope(data, trace_id_from_request(request))


@router.post("/accounts/{account_id}/credits")
def add_credits(account_id: str, payload: AddCreditsRequest, request: Request):
    data = engine.add_credits(identity_from_request(request), account_id, amount=payload.amount)
    return success_envelope(data, trace_id_from_request(request))


@router.get("/accounts/{account_id}/ledger")
def list_ledger_entries(account_id: str, request: Request):
    data = engine.list_ledger_entries(identity_from_request(request), account_id)
    return success_envelope({"items": data, "total": len(data)}, trace_id_from_request(request))
