"""
NotifyHub API Routes

FastAPI route handlers for NotifyHub.
"""
from .health import router as health_router
from .auth import router as auth_router
from .audit import router as audit_router
from .channels import router as channels_router
from .triggers import router as triggers_router
from .notifications import router as notifications_router
from .jobs import router as jobs_router

__all__ = [
    'health_router',
    'auth_router',
    'audit_router',
    'channels_router',
    'triggers_router',
    'notifications_router',
    'jobs_router',
]
