"""Dependency injection for FastAPI endpoints"""

import uuid
from fastapi import Depends, Header, HTTPException, Request
from sqlalchemy.orm import Session

from household_budget.infrastructure.database.session import get_db
from household_budget.infrastructure.clients.household import HouseholdDirectoryClient


def get_request_id(request: Request) -> str:
    """Extract request ID from request state"""
    return getattr(request.state, "request_id", "unknown")


def get_acting_user(x_user_id: str = Header(..., alias="X-User-ID")) -> str:
    """Identity of the caller; authentication happens upstream"""
    if not x_user_id.strip():
        raise HTTPException(status_code=400, detail="X-User-ID header is empty")
    return x_user_id.strip()


def get_household_client() -> HouseholdDirectoryClient:
    """Provide household directory client instance"""
    return HouseholdDirectoryClient()


def parse_uuid(value: str, label: str = "ID") -> uuid.UUID:
    try:
        return uuid.UUID(value)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid {label} format")


def get_session(request: Request, db: Session = Depends(get_db)) -> Session:
    """Request-scoped session, also exposed to the exception handlers for rollback"""
    request.state.db = db
    return db
