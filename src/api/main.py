"""
FastAPI application for the Classroom platform
Assignments, submissions, grading, discussion threads, lessons, live
notifications and admin user management.
"""
from dotenv import load_dotenv

# Load env vars immediately
load_dotenv()

import traceback
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

from models.database import create_tables
from services.errors import CallableError, ServiceError


# ============= FASTAPI APP SETUP =============
app = FastAPI(
    title="Classroom API",
    description="Assignments, grading, discussion threads, lessons and live notifications",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

# Enable CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["*"],
)


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError):
    """Translate service-layer errors into HTTP responses"""
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message, "code": exc.code})


@app.exception_handler(CallableError)
async def callable_error_handler(request: Request, exc: CallableError):
    """Typed errors of the privileged callables"""
    logger.warning(f"Callable {request.url.path} failed with {exc.code}: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": {"status": exc.code, "message": exc.message}},
    )


# Global exception handler for anything the services did not anticipate
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception: {exc}")
    logger.error(f"Traceback: {traceback.format_exc()}")
    return JSONResponse(status_code=500, content={"detail": str(exc)})


@app.on_event("startup")
async def startup_event():
    """Initialize database on startup"""
    create_tables()
    logger.info("Database tables created/verified")


@app.get("/")
async def root():
    """Root endpoint with API information"""
    return {
        "message": "Classroom API",
        "version": "1.0.0",
        "docs": "/docs",
        "endpoints": {
            "auth": {
                "login": "POST /api/auth/login",
                "register": "POST /api/auth/register",
                "me": "GET /api/auth/me",
                "logout": "POST /api/auth/logout"
            },
            "assignments": {
                "list": "GET /api/assignments",
                "create": "POST /api/assignments",
                "assigned": "GET /api/assignments/assigned",
                "update": "PUT /api/assignments/{assignment_id}",
                "delete": "DELETE /api/assignments/{assignment_id}",
                "submit": "POST /api/assignments/{assignment_id}/submissions"
            },
            "submissions": {
                "mine": "GET /api/submissions/mine",
                "grade": "PUT /api/submissions/{submission_id}/grade",
                "comments": "GET/POST /api/submissions/{submission_id}/comments"
            },
            "lessons": "GET /api/lessons",
            "notifications": {
                "list": "GET /api/notifications",
                "read": "POST /api/notifications/read",
                "live": "WS /api/notifications/ws?token=..."
            },
            "users": "GET /api/users",
            "functions": {
                "deleteUserCompletely": "POST /api/functions/deleteUserCompletely",
                "getUserDeleteStats": "POST /api/functions/getUserDeleteStats"
            }
        }
    }


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {"status": "healthy"}


# Import and include routers
from api.routes import assignments, auth, functions, lessons, notifications, submissions, users

app.include_router(auth.router)
app.include_router(assignments.router)
app.include_router(submissions.router)
app.include_router(lessons.router)
app.include_router(notifications.router)
app.include_router(users.router)
app.include_router(functions.router)
