from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import logging
import os

from app.core.exceptions import ProgramHubError, RegistrationClosedError
from app.routers import programs, departments, public

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

app = FastAPI(title="ProgramHub API")

# CORS setup
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(programs.router)
app.include_router(departments.router)
app.include_router(public.router)


@app.exception_handler(ProgramHubError)
async def programhub_error_handler(request: Request, exc: ProgramHubError):
    body = {"detail": exc.message}
    if isinstance(exc, RegistrationClosedError):
        body["reason"] = exc.reason
        if exc.deadline is not None:
            body["deadline"] = exc.deadline.isoformat()
    logger.info(f"{type(exc).__name__} on {request.url.path}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=body)


@app.get("/")
async def root():
    return {
        "message": "Welcome to the ProgramHub API",
        "endpoints": {
            "programs": "/programs",
            "departments": "/departments",
            "public": "/public/programs/{slug}"
        }
    }
