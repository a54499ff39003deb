"""API routes package."""

from server.routes.drive_routes import router as drive_router

__all__ = ["drive_router"]
