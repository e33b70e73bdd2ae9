"""Top-level API router."""

from fastapi import APIRouter

from margindesk.api.routes.audit import router as audit_router
from margindesk.api.routes.directory import router as directory_router
from margindesk.api.routes.finance import router as finance_router
from margindesk.api.routes.health import router as health_router
from margindesk.api.routes.imports import router as imports_router
from margindesk.api.routes.integrations import router as integrations_router
from margindesk.api.routes.me import router as me_router
from margindesk.api.routes.pods import router as pods_router
from margindesk.api.routes.reports import router as reports_router
from margindesk.api.routes.reselling import router as reselling_router
from margindesk.api.routes.time import router as time_router
from margindesk.api.routes.utilization import router as utilization_router

api_router = APIRouter()
api_router.include_router(health_router, tags=["health"])
api_router.include_router(me_router)
api_router.include_router(directory_router)
api_router.include_router(time_router)
api_router.include_router(utilization_router)
api_router.include_router(reselling_router)
api_router.include_router(finance_router)
api_router.include_router(reports_router)
api_router.include_router(imports_router)
api_router.include_router(pods_router)
api_router.include_router(integrations_router)
api_router.include_router(audit_router)
