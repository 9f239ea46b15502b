from .scan import router as scan_router
from .session import router as session_router

__all__ = ["scan_router", "session_router"]
