"""
V1 API router aggregator — wires all endpoint modules together.
"""

from fastapi import APIRouter

from bulletin.api.v1.endpoints import announcements, auth, health, roles, users

api_router = APIRouter()

# Login, registration, verification, recovery, unlock
api_router.include_router(auth.router)

# Administration
api_router.include_router(roles.router)
api_router.include_router(users.router)

# Announcements with attachments
api_router.include_router(announcements.router)

api_router.include_router(health.router)
