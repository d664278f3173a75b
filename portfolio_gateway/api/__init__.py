from . import infrastructure_router, metadata_router, user_router

__all__ = ["infrastructure_router", "metadata_router", "user_router"]
