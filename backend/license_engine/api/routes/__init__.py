# API routes
from license_engine.api.routes import licenses

__all__ = ["licenses"]
