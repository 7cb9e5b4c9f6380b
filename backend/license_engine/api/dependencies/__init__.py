"""
API Dependencies module.

Provides shared FastAPI dependencies for route handlers.
"""

from license_engine.api.dependencies.license_access import (
    get_license_watcher,
    get_request_tenant_id,
    require_license_access,
)

__all__ = [
    "get_license_watcher",
    "get_request_tenant_id",
    "require_license_access",
]
