# demandes/api/routes/demandes.py
from fastapi import APIRouter, Depends, Query, Request as FastAPIRequest
from fastapi.encoders import jsonable_encoder
from typing import Optional
from demandes.api.deps import get_current_actor, get_repositories, require_role
from demandes.core.config import settings
from demandes.core.rate_limit import CREATE_LIMIT, limiter
from demandes.models.actor import Actor
from demandes.models.common import DemandeStatus, Priority, RequestTypeCode, STAFF_ROLES
from demandes.models.demande import ArchivePayload, CommentPayload, Demande, DemandeCreate, DemandeUpdate, TransitionPayload
from demandes.services import demande_service as svc
from demandes.workflow.errors import DemandeNotFoundError

router = APIRouter()


def ok(data, warnings=None) -> dict:
    return jsonable_encoder({"success": True, "data": data, "warnings": warnings or []})


async def _visible_demande(demande_id: str, actor: Actor, repos: svc.Repositories) -> Demande:
    demande = await svc.load_demande(demande_id, repos)
    # un estudiante no distingue "no existe" de "no es suya"
    if actor.is_student and demande.student.id != actor.id:
        raise DemandeNotFoundError("Demande non trouvée", {"demande_id": demande_id})
    return demande


@router.post("", status_code=201)
@limiter.limit(CREATE_LIMIT)
async def create_demande(
    request: FastAPIRequest,
    payload: DemandeCreate,
    actor: Actor = Depends(require_role(["STUDENT"])),
    repos: svc.Repositories = Depends(get_repositories),
):
    outcome = await svc.create_demande(payload, actor, repos)
    return ok(outcome.demande, outcome.warnings)


@router.get("")
async def list_demandes(
    actor: Actor = Depends(get_current_actor),
    repos: svc.Repositories = Depends(get_repositories),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=settings.max_page_size),
    sort: str = Query("-created_at"),
    status: Optional[DemandeStatus] = Query(None),
    priority: Optional[Priority] = Query(None),
    request_type: Optional[RequestTypeCode] = Query(None, alias="type"),
):
    items, meta = await svc.list_demandes(
        actor, repos, page=page, page_size=page_size, sort=sort,
        status=status, priority=priority, request_type=request_type,
    )
    return ok({"items": items, **meta.model_dump()})


@router.get("/{demande_id}")
async def get_demande(
    demande_id: str,
    actor: Actor = Depends(get_current_actor),
    repos: svc.Repositories = Depends(get_repositories),
):
    return ok(await _visible_demande(demande_id, actor, repos))


@router.patch("/{demande_id}")
async def update_demande(
    demande_id: str,
    payload: DemandeUpdate,
    actor: Actor = Depends(get_current_actor),
    repos: svc.Repositories = Depends(get_repositories),
):
    await _visible_demande(demande_id, actor, repos)
    outcome = await svc.update_demande(demande_id, payload, actor, repos)
    return ok(outcome.demande, outcome.warnings)


@router.post("/{demande_id}/transition")
async def transition_demande(
    demande_id: str,
    payload: TransitionPayload,
    actor: Actor = Depends(get_current_actor),
    repos: svc.Repositories = Depends(get_repositories),
):
    await _visible_demande(demande_id, actor, repos)
    outcome = await svc.transition_demande(demande_id, payload, actor, repos)
    return ok(outcome.demande, outcome.warnings)


@router.post("/{demande_id}/archive")
async def archive_demande(
    demande_id: str,
    payload: Optional[ArchivePayload] = None,
    actor: Actor = Depends(require_role(list(STAFF_ROLES))),
    repos: svc.Repositories = Depends(get_repositories),
):
    outcome = await svc.archive_demande(demande_id, actor, repos, comment=payload.comment if payload else None)
    return ok(outcome.demande, outcome.warnings)


@router.post("/{demande_id}/comments", status_code=201)
async def add_comment(
    demande_id: str,
    payload: CommentPayload,
    actor: Actor = Depends(get_current_actor),
    repos: svc.Repositories = Depends(get_repositories),
):
    await _visible_demande(demande_id, actor, repos)
    return ok(await svc.add_comment(demande_id, payload.content, actor, repos))


@router.get("/{demande_id}/history")
async def get_history(
    demande_id: str,
    actor: Actor = Depends(get_current_actor),
    repos: svc.Repositories = Depends(get_repositories),
):
    await _visible_demande(demande_id, actor, repos)
    return ok(await svc.get_history(demande_id, repos))


@router.get("/{demande_id}/transitions")
async def available_transitions(
    demande_id: str,
    actor: Actor = Depends(get_current_actor),
    repos: svc.Repositories = Depends(get_repositories),
):
    demande = await _visible_demande(demande_id, actor, repos)
    return ok({"current_status": demande.status.code, "available": svc.transitions_for(demande, actor, repos)})


@router.delete("/{demande_id}")
async def delete_demande(
    demande_id: str,
    actor: Actor = Depends(require_role(list(STAFF_ROLES))),
    repos: svc.Repositories = Depends(get_repositories),
):
    outcome = await svc.delete_demande(demande_id, actor, repos)
    return ok({"id": outcome.demande.id, "active": outcome.demande.active}, outcome.warnings)
