"""Top-level API router."""

from fastapi import APIRouter

from ebtracker.api.routes.activities import router as activities_router
from ebtracker.api.routes.dashboard import router as dashboard_router
from ebtracker.api.routes.deliverables import files_router
from ebtracker.api.routes.deliverables import router as deliverables_router
from ebtracker.api.routes.health import router as health_router
from ebtracker.api.routes.invoices import router as invoices_router
from ebtracker.api.routes.me import router as me_router
from ebtracker.api.routes.notifications import router as notifications_router
from ebtracker.api.routes.payments import router as payments_router
from ebtracker.api.routes.project_files import router as project_files_router
from ebtracker.api.routes.projects import router as projects_router
from ebtracker.api.routes.proposals import router as proposals_router
from ebtracker.api.routes.tasks import router as tasks_router
from ebtracker.api.routes.time_off import router as time_off_router
from ebtracker.api.routes.timesheets import router as timesheets_router
from ebtracker.api.routes.users import router as users_router
from ebtracker.api.routes.variations import router as variations_router

api_router = APIRouter()
api_router.include_router(health_router, tags=["health"])
api_router.include_router(me_router)
api_router.include_router(users_router)
api_router.include_router(proposals_router)
api_router.include_router(projects_router)
api_router.include_router(timesheets_router)
api_router.include_router(time_off_router)
api_router.include_router(variations_router)
api_router.include_router(invoices_router)
api_router.include_router(payments_router)
api_router.include_router(deliverables_router)
api_router.include_router(files_router)
api_router.include_router(project_files_router)
api_router.include_router(tasks_router)
api_router.include_router(activities_router)
api_router.include_router(notifications_router)
api_router.include_router(dashboard_router)
