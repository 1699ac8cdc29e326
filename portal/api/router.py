from fastapi import APIRouter

from portal.api.endpoints.applications import router as applications_router
from portal.api.endpoints.payments import router as payments_router
from portal.api.endpoints.transactions import router as transactions_router

router = APIRouter()

router.include_router(applications_router)
router.include_router(payments_router)
router.include_router(transactions_router)
