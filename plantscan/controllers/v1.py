from fastapi import APIRouter

from . import auth, payments, scans

router = APIRouter(prefix="/v1")
router.include_router(scans.router)
# payments router also receives Stripe webhooks
router.include_router(payments.router)
router.include_router(auth.router)
