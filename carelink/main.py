from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
import os
import logging
from dotenv import load_dotenv
import uvicorn

from carelink import __version__
from carelink.api import (
    auth_router,
    patients_router,
    doctor_patients_router,
    medical_records_router,
    appointments_router,
    organizations_router,
    profile_router,
)
from carelink.core.errors import AccessDenied, InvalidAttachment, InvalidStatusTransition
from carelink.core.storage import MEDIA_URL, STORAGE_DIR
from carelink.database.connection import engine, Base

load_dotenv()

# ==================== CONFIG ====================

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv("CORS_ORIGINS", "http://localhost:5173,http://localhost:8080").split(",")
    if origin.strip()
]

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s"
)
logger = logging.getLogger(__name__)

# Create database tables
Base.metadata.create_all(bind=engine)

app = FastAPI(
    title="CareLink API",
    description="Role-based healthcare records for patients, doctors and organizations",
    version=__version__
)

# Serve stored attachments
STORAGE_DIR.mkdir(parents=True, exist_ok=True)
app.mount(MEDIA_URL, StaticFiles(directory=str(STORAGE_DIR)), name="uploads")

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ==================== EXCEPTION HANDLERS ====================

@app.exception_handler(AccessDenied)
async def access_denied_handler(request: Request, exc: AccessDenied):
    logger.warning(f"Access denied on {request.method} {request.url.path}: {exc.message}")
    return JSONResponse(status_code=403, content={"detail": exc.message})


@app.exception_handler(InvalidStatusTransition)
async def invalid_transition_handler(request: Request, exc: InvalidStatusTransition):
    return JSONResponse(status_code=409, content={"detail": str(exc)})


@app.exception_handler(InvalidAttachment)
async def invalid_attachment_handler(request: Request, exc: InvalidAttachment):
    return JSONResponse(
        status_code=400,
        content={"detail": "Invalid attachment", "errors": exc.errors}
    )

# Include routers
app.include_router(auth_router)
app.include_router(patients_router)
app.include_router(doctor_patients_router)
app.include_router(medical_records_router)
app.include_router(appointments_router)
app.include_router(organizations_router)
app.include_router(profile_router)

@app.get("/")
async def root():
    return {
        "message": "CareLink API",
        "status": "running",
        "version": __version__,
        "endpoints": {
            "auth": "/api/auth",
            "patients": "/api/patients",
            "doctor_patients": "/api/doctor-patients",
            "medical_records": "/api/medical-records",
            "appointments": "/api/appointments",
            "organizations": "/api/organizations",
            "profile": "/api/profile",
            "docs": "/docs"
        }
    }

@app.get("/health")
async def health_check():
    return {"status": "healthy"}

if __name__ == "__main__":
    uvicorn.run("carelink.main:app", host="0.0.0.0", port=8000, reload=True)
