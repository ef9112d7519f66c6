from .search import router as search_router

ROUTERS = (search_router,)

__all__ = ["ROUTERS", "search_router"]
