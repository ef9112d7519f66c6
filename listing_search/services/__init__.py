from listing_search.services.search import SearchService, search_service

__all__ = ["SearchService", "search_service"]
