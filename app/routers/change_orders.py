from fastapi import APIRouter, Depends, HTTPException, Response
from uuid import UUID
from loguru import logger
from app.auth import get_current_profile
from app.change_orders import service
from app.change_orders.directory import get_project
from app.change_orders.errors import (
    ChangeOrderError,
    ChangeOrderNotFound,
    DispatchFailed,
    EmptySignature,
    GuardViolation,
    NoClientLinked,
    NoContactEmail,
    StoreConflict,
)
from app.change_orders.lifecycle import allowed_actions, ACTION_LABELS
from app.models.change_order import (
    ApproveRequest,
    ChangeOrder,
    ChangeOrderCreate,
    ChangeOrderResponse,
    ChangeOrderUpdate,
    ClientSignRequest,
    CreateChangeOrderRequest,
    NotesUpdate,
    SavedSignatureResponse,
    SignRequest,
    TimelineEntry,
)
from app.notifications.token_service import verify_action_token
from app.pdf.change_order_generator import PDF_MIME_TYPE, pdf_filename
from app.signatures.profile import get_saved_signature

router = APIRouter(prefix="/api/v1/change-orders", tags=["change-orders"])
project_router = APIRouter(prefix="/api/v1/projects", tags=["change-orders"])

ERROR_STATUS = {
    ChangeOrderNotFound: 404,
    GuardViolation: 409,
    StoreConflict: 409,
    EmptySignature: 400,
    NoClientLinked: 422,
    NoContactEmail: 422,
    DispatchFailed: 502,
}


def _http_error(e: ChangeOrderError) -> HTTPException:
    status_code = ERROR_STATUS.get(type(e), 400)
    if status_code >= 500:
        logger.error(f"Change order request failed: {e.message}")
    return HTTPException(status_code=status_code, detail=e.message)


async def _engine(coro):
    """Await an engine call, turning its errors into HTTP errors."""
    try:
        return await coro
    except ChangeOrderError as e:
        raise _http_error(e)


async def _verify_co_access(change_order_id: UUID, profile: dict) -> ChangeOrder:
    """Fetch change order and verify it belongs to the caller's company."""
    co = await _engine(service.get(change_order_id))
    if str(co.company_id) != str(profile.get("company_id")):
        raise HTTPException(status_code=404, detail="Change order not found")
    return co


def _verify_project_access(project_id: UUID, profile: dict) -> dict:
    project = get_project(project_id)
    if not project or str(project.get("company_id")) != str(profile.get("company_id")):
        raise HTTPException(status_code=404, detail="Project not found")
    return project


# ---------------------------------------------------------------------------
# Project-scoped
# ---------------------------------------------------------------------------


@project_router.get(
    "/{project_id}/change-orders", response_model=list[ChangeOrderResponse]
)
async def list_change_orders(
    project_id: UUID,
    profile: dict = Depends(get_current_profile),
):
    _verify_project_access(project_id, profile)
    cos = await service.list_for_project(project_id)
    return [service.to_response(co) for co in cos]


@project_router.get("/{project_id}/change-orders/summary")
async def change_order_summary(
    project_id: UUID,
    profile: dict = Depends(get_current_profile),
):
    """Approved change order total for the project's fee."""
    _verify_project_access(project_id, profile)
    total = await service.approved_total_for_project(project_id)
    return {"project_id": str(project_id), "approved_total": float(total)}


@project_router.post(
    "/{project_id}/change-orders",
    response_model=ChangeOrderResponse,
    status_code=201,
)
async def create_change_order(
    project_id: UUID,
    body: CreateChangeOrderRequest,
    profile: dict = Depends(get_current_profile),
):
    if body.project_id != project_id:
        raise HTTPException(status_code=400, detail="Project mismatch")
    _verify_project_access(project_id, profile)
    data = ChangeOrderCreate.model_validate(body.model_dump(exclude={"save_as_draft"}))
    co = await _engine(
        service.create(
            data,
            as_draft=body.save_as_draft,
            actor_id=profile["id"],
        )
    )
    return service.to_response(co)


# ---------------------------------------------------------------------------
# Client sign link (public, token-authenticated)
# ---------------------------------------------------------------------------


@router.get("/client-sign", response_model=ChangeOrderResponse)
async def view_for_client(token: str):
    """What the client sees when opening the emailed link."""
    payload = verify_action_token(token)
    co = await _engine(service.get(payload["change_order_id"]))
    return service.to_response(co)


@router.post("/client-sign", response_model=ChangeOrderResponse)
async def client_sign(token: str, body: ClientSignRequest):
    """Client signs a Change Order via the emailed link."""
    payload = verify_action_token(token)
    co = await _engine(
        service.client_sign(
            payload["change_order_id"],
            signer_name=body.signer_name,
            signature=body.signature_data,
        )
    )
    return service.to_response(co)


# ---------------------------------------------------------------------------
# Saved signature of the signed-in user
# ---------------------------------------------------------------------------


@router.get("/signature/saved", response_model=SavedSignatureResponse)
async def saved_signature(profile: dict = Depends(get_current_profile)):
    """Signature to pre-fill the signing pad with, if the user saved one."""
    return SavedSignatureResponse(
        signature_data=await get_saved_signature(profile["id"])
    )


# ---------------------------------------------------------------------------
# Single change order
# ---------------------------------------------------------------------------


@router.get("/{change_order_id}", response_model=ChangeOrderResponse)
async def get_change_order(
    change_order_id: UUID,
    profile: dict = Depends(get_current_profile),
):
    co = await _verify_co_access(change_order_id, profile)
    return service.to_response(co)


@router.patch("/{change_order_id}", response_model=ChangeOrderResponse)
async def update_change_order(
    change_order_id: UUID,
    body: ChangeOrderUpdate,
    profile: dict = Depends(get_current_profile),
):
    await _verify_co_access(change_order_id, profile)
    co = await _engine(service.edit(change_order_id, body, actor_id=profile["id"]))
    return service.to_response(co)


@router.put("/{change_order_id}/notes", response_model=ChangeOrderResponse)
async def update_notes(
    change_order_id: UUID,
    body: NotesUpdate,
    profile: dict = Depends(get_current_profile),
):
    await _verify_co_access(change_order_id, profile)
    co = await _engine(
        service.update_notes(change_order_id, body.notes, actor_id=profile["id"])
    )
    return service.to_response(co)


@router.delete("/{change_order_id}", status_code=204)
async def delete_change_order(
    change_order_id: UUID,
    profile: dict = Depends(get_current_profile),
):
    await _verify_co_access(change_order_id, profile)
    await _engine(service.delete(change_order_id, actor_id=profile["id"]))


@router.get("/{change_order_id}/actions")
async def get_allowed_actions(
    change_order_id: UUID,
    profile: dict = Depends(get_current_profile),
):
    """Actions the UI should offer for the change order right now."""
    co = await _verify_co_access(change_order_id, profile)
    actions = sorted(allowed_actions(co), key=lambda a: a.value)
    return {
        "status": co.status.value,
        "actions": [{"action": a.value, "label": ACTION_LABELS[a]} for a in actions],
    }


@router.get("/{change_order_id}/timeline", response_model=list[TimelineEntry])
async def get_timeline(
    change_order_id: UUID,
    profile: dict = Depends(get_current_profile),
):
    await _verify_co_access(change_order_id, profile)
    return await _engine(service.timeline(change_order_id))


@router.get("/{change_order_id}/pdf")
async def download_pdf(
    change_order_id: UUID,
    profile: dict = Depends(get_current_profile),
):
    """Generate the Change Order PDF for download or preview."""
    co = await _verify_co_access(change_order_id, profile)
    pdf_bytes = await _engine(service.generate_artifact(change_order_id))
    return Response(
        content=pdf_bytes,
        media_type=PDF_MIME_TYPE,
        headers={"Content-Disposition": f'inline; filename="{pdf_filename(co)}"'},
    )


# ---------------------------------------------------------------------------
# Lifecycle actions
# ---------------------------------------------------------------------------


@router.post("/{change_order_id}/sign", response_model=ChangeOrderResponse)
async def sign_change_order(
    change_order_id: UUID,
    body: SignRequest,
    profile: dict = Depends(get_current_profile),
):
    """Internal signature by the authenticated staff member."""
    await _verify_co_access(change_order_id, profile)
    co = await _engine(
        service.sign_internally(
            change_order_id,
            body.signature_data,
            signer_id=profile["id"],
            save_signature=body.save_signature,
            source=body.signature_source,
        )
    )
    return service.to_response(co)


@router.post("/{change_order_id}/send", response_model=ChangeOrderResponse)
async def send_to_client(
    change_order_id: UUID,
    profile: dict = Depends(get_current_profile),
):
    """Generate PDF and send Change Order to client for signature."""
    await _verify_co_access(change_order_id, profile)
    co = await _engine(service.send(change_order_id, actor_id=profile["id"]))
    return service.to_response(co)


@router.post("/{change_order_id}/resend", response_model=ChangeOrderResponse)
async def resend_to_client(
    change_order_id: UUID,
    profile: dict = Depends(get_current_profile),
):
    await _verify_co_access(change_order_id, profile)
    co = await _engine(service.resend(change_order_id, actor_id=profile["id"]))
    return service.to_response(co)


@router.post("/{change_order_id}/approve", response_model=ChangeOrderResponse)
async def approve_change_order(
    change_order_id: UUID,
    body: ApproveRequest | None = None,
    profile: dict = Depends(get_current_profile),
):
    await _verify_co_access(change_order_id, profile)
    body = body or ApproveRequest()
    co = await _engine(
        service.approve(
            change_order_id,
            actor_id=profile["id"],
            client_signer_name=body.client_signer_name,
            client_signature=body.client_signature_data,
        )
    )
    return service.to_response(co)


@router.post("/{change_order_id}/reject", response_model=ChangeOrderResponse)
async def reject_change_order(
    change_order_id: UUID,
    profile: dict = Depends(get_current_profile),
):
    await _verify_co_access(change_order_id, profile)
    co = await _engine(service.reject(change_order_id, actor_id=profile["id"]))
    return service.to_response(co)


@router.post("/{change_order_id}/void", response_model=ChangeOrderResponse)
async def void_change_order(
    change_order_id: UUID,
    profile: dict = Depends(get_current_profile),
):
    await _verify_co_access(change_order_id, profile)
    co = await _engine(service.void(change_order_id, actor_id=profile["id"]))
    return service.to_response(co)
