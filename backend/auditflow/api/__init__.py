from fastapi import APIRouter

from auditflow.api.deps import require_actor
from auditflow.api.routes import actions, audits, observations, templates

router = APIRouter()

# Every route needs a resolved acting user
router.include_router(
    audits.router,
    prefix="/audits",
    tags=["audits"],
    dependencies=[require_actor]
)
router.include_router(
    observations.router,
    prefix="/observations",
    tags=["observations"],
    dependencies=[require_actor]
)
router.include_router(
    actions.router,
    prefix="/actions",
    tags=["actions"],
    dependencies=[require_actor]
)
router.include_router(
    templates.router,
    prefix="/templates",
    tags=["templates"],
    dependencies=[require_actor]
)
