from __future__ import annotations

from fastapi import APIRouter, File, Form, Header, Request, UploadFile
from fastapi.responses import JSONResponse

from contract_review.routes._deps import identity_from_request, trace_id_from_request
from contract_review.schemas import ContractRenameRequest, success_envelope
from contract_review.workflow import engine

router = APIRouter(prefix="/api/v1", tags=["contracts"])


@router.post("/contracts")
async def upload_contract(
    request: Request,
    file: UploadFile = File(...),
    title: str | None = Form(default=None),
    idempotency_key: str | None = Header(default=None, alias="Idempotency-Key"),
):
    identity = identity_from_request(request)
    file_bytes = await file.read()
    data = engine.upload_and_analyze(
        identity,
        document=file_bytes,
        file_name=file.filename or "upload.bin",
        title=title,
        idempotency_key=idempotency_key,
    )
    return JSONResponse(
        status_code=201,
        content=success_envelope(data, trace_id_from_request(request)),
    )


@router.get("/contracts")
def list_contracts(request: Request):
    data = engine.list_contracts(identity_from_request(request))
    return success_envelope({"items": data, "total": len(data)}, trace_id_from_request(request))


@router.get("/contracts/{contract_id}")
def get_contract(contract_id: str, request: Request):
    data = engine.get_contract(identity_from_request(request), contract_id)
    return success_envelope(data, trace_id_from_request(request))


@router.patch("/contracts/{contract_id}")
def rename_contract(contract_id: str, payload: ContractRenameRequest, request: Request):
    data = engine.rename_contract(identity_from_request(request), contract_id, title=payload.title)
    return success_envelope(data, trace_id_from_request(request))


@router.delete("/contracts/{contract_id}")
def delete_contract(contract_id: str, request: Request):
    data = engine.delete_contract(identity_from_request(request), contract_id)
    return success_envelope(data, trace_id_from_request(request))


@router.post("/contracts/{contract_id}/share")
def share_report(contract_id: str, request: Request):
    data = engine.share_report(identity_from_request(request), contract_id)
    return success_envelope(data, trace_id_from_request(request))


@router.get("/public-reports/{report_id}")
def get_public_report(report_id: str, request: Request):
    data = engine.get_public_report(report_id)
    return success_envelope(data, trace_id_from_request(request))
