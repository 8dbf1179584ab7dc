"""Shared helpers for API routes."""

from decimal import Decimal
from datetime import datetime
from fastapi import Request


def serialize_decimals(data):
    """Convert Decimals to strings and datetimes to ISO format for JSON responses"""
    if isinstance(data, dict):
        return {k: serialize_decimals(v) for k, v in data.items()}
    elif isinstance(data, (list, tuple)):
        return [serialize_decimals(item) for item in data]
    elif isinstance(data, Decimal):
        return str(data)
    elif isinstance(data, datetime):
        return data.isoformat()
    else:
        return data


def get_round_controller(request: Request):
    """Get round controller from app state."""
    return getattr(request.app.state, 'round_controller', None)


def get_session_registry(request: Request):
    """Get session registry from app state."""
    return getattr(request.app.state, 'session_registry', None)


def get_redis_service(request: Request):
    """Get Redis service from app state."""
    return getattr(request.app.state, 'redis_service', None)
