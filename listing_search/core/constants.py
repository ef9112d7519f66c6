"""Shared search constants."""

# Reserved house account whose imported listings are hidden from ordinary browsing
HOUSE_VENDOR_ID = 1

DEFAULT_CATEGORY = "car"
DEFAULT_PAGE_SIZE = 24

# Free-text search: raw length cap and token cap
MAX_GENERAL_SEARCH_LENGTH = 75
MAX_SEARCH_TOKENS = 10

RELATED_LIMIT = 4
MOST_WANTED_LIMIT = 24

# Price calculation: comparable listings from the last year, registration within +-2 years
PRICE_SAMPLE_WINDOW_DAYS = 365
PRICE_SAMPLE_REGISTRATION_BAND = 2
PRICE_SAMPLE_LIMIT = 1000

# Personalization term fetch cap and visitor id bound
PERSONALIZATION_TERM_LIMIT = 40
MAX_VISITOR_ID_LENGTH = 255

# Registration years older than this count as "retro"
RETRO_AGE_YEARS = 30
