# API Package - Centralized imports
# Allows easy importing of all routers and auth dependencies

from .auth import (
    router as auth_router,
    get_current_user,
    get_request_context,
    create_access_token,
    create_refresh_token,
)
from .patients import router as patients_router
from .doctor_patients import router as doctor_patients_router
from .medical_records import router as medical_records_router
from .appointments import router as appointments_router
from .organizations import router as organizations_router
from .profile import router as profile_router

__all__ = [
    # Auth
    "auth_router",
    "get_current_user",
    "get_request_context",
    "create_access_token",
    "create_refresh_token",

    # Routers
    "patients_router",
    "doctor_patients_router",
    "medical_records_router",
    "appointments_router",
    "organizations_router",
    "profile_router",
]
