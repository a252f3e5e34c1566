from fastapi import APIRouter, status

from .notification import router as notification_router

router = APIRouter(
    tags=["notifications"],
    responses={
        status.HTTP_400_BAD_REQUEST: {"description": "Invalid input or notification type"},
        status.HTTP_404_NOT_FOUND: {"description": "Notification does not exist"},
        status.HTTP_503_SERVICE_UNAVAILABLE: {"description": "Notification store unavailable"},
    },
)
router.include_router(notification_router)
