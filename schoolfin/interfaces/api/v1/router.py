from fastapi import APIRouter

from schoolfin.interfaces.api.v1.routes.audit_logs import router as audit_logs_router
from schoolfin.interfaces.api.v1.routes.auth import router as auth_router
from schoolfin.interfaces.api.v1.routes.context import router as context_router
from schoolfin.interfaces.api.v1.routes.fee_structures import router as fee_structures_router
from schoolfin.interfaces.api.v1.routes.mpesa import router as mpesa_router
from schoolfin.interfaces.api.v1.routes.payments import router as payments_router
from schoolfin.interfaces.api.v1.routes.ping import router as ping_router
from schoolfin.interfaces.api.v1.routes.student_fees import router as student_fees_router

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(audit_logs_router)
api_router.include_router(auth_router)
api_router.include_router(context_router)
api_router.include_router(fee_structures_router)
api_router.include_router(mpesa_router)
api_router.include_router(payments_router)
api_router.include_router(ping_router)
api_router.include_router(student_fees_router)
