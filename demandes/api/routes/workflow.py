# demandes/api/routes/workflow.py
from fastapi import APIRouter
from demandes.workflow.constants import (
    ARCHIVE_TRANSITIONS,
    STATUSES,
    STATUS_META,
    TRANSITION_PERMISSIONS,
    TRANSITION_REQUIREMENTS,
    WORKFLOW_TRANSITIONS,
)

router = APIRouter()


@router.get("")
async def get_workflow():
    """Tablas del workflow para que el front pinte estados y botones."""
    return {
        "statuses": [
            {"code": s, "label": STATUS_META[s].label, "color": STATUS_META[s].color,
             "is_terminal": STATUS_META[s].is_terminal, "description": STATUS_META[s].description}
            for s in STATUSES
        ],
        "transitions": {s: list(t) for s, t in WORKFLOW_TRANSITIONS.items()},
        "archive_transitions": {s: list(t) for s, t in ARCHIVE_TRANSITIONS.items()},
        "permissions": {k: sorted(v) for k, v in TRANSITION_PERMISSIONS.items()},
        "requirements": {
            s: {"required_fields": sorted(r.required_fields), "optional_fields": sorted(r.optional_fields)}
            for s, r in TRANSITION_REQUIREMENTS.items()
        },
    }
