from fastapi import APIRouter

from app.api.routes import accounts, accuracy, audit, draws, health, jobs, schedule, settlements


api_router = APIRouter()
api_router.include_router(health.router)
api_router.include_router(accounts.router)
api_router.include_router(settlements.router)
api_router.include_router(schedule.router)
api_router.include_router(draws.router)
api_router.include_router(accuracy.router)
api_router.include_router(audit.router)
api_router.include_router(jobs.router)
