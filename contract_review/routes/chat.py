from __future__ import annotations

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from contract_review.routes._deps import identity_from_request, trace_id_from_request
from contract_review.schemas import ChatMessageRequest, success_envelope
from contract_review.workflow import engine

router = APIRouter(prefix="/api/v1", tags=["chat"])


@router.post("/contracts/{contract_id}/chat")
def send_chat_message(contract_id: str, payload: ChatMessageRequest, request: Request):
    data = engine.send_chat_message(identity_from_request(request), contract_id, text=payload.text)
    return JSONResponse(
        status_code=201,
        content=success_envelope(data, trace_id_from_request(request)),
    )


@router.get("/contracts/{contract_id}/chat")
def list_chat_messages(contract_id: str, request: Request):
    data = engine.list_chat_messages(identity_from_request(request), contract_id)
    return success_envelope({"items": data, "total": len(data)}, trace_id_from_request(request))
