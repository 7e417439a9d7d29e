from fastapi import APIRouter

from estatetrust.api.v1.endpoints.health import router as health_router
from estatetrust.api.v1.endpoints.internal import router as internal_router
from estatetrust.api.v1.endpoints.me import router as me_router
from estatetrust.api.v1.endpoints.listings import router as listings_router
from estatetrust.api.v1.endpoints.admin_verification import router as admin_verification_router
from estatetrust.api.v1.endpoints.contact import router as contact_router
from estatetrust.api.v1.endpoints.notifications import router as notifications_router


router = APIRouter(prefix="/v1")
router.include_router(health_router, tags=["health"])
router.include_router(internal_router, tags=["internal"])
router.include_router(me_router, tags=["me"])
router.include_router(listings_router, tags=["listings"])
router.include_router(admin_verification_router, tags=["admin"])
router.include_router(contact_router, tags=["contact"])
router.include_router(notifications_router, tags=["notifications"])
