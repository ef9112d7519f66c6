from .personalization import (
    HttpPersonalizationProvider,
    InterestTerm,
    PersonalizationProvider,
    PersonalizationServiceError,
    SqlPersonalizationProvider,
    get_personalization_provider,
    hash_visitor_id,
)

__all__ = [
    "HttpPersonalizationProvider",
    "InterestTerm",
    "PersonalizationProvider",
    "PersonalizationServiceError",
    "SqlPersonalizationProvider",
    "get_personalization_provider",
    "hash_visitor_id",
]
