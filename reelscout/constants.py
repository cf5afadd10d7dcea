"""Application constants - centralized configuration values."""

# =============================================================================
# API Timeouts (in seconds)
# =============================================================================
API_TIMEOUT_EXTERNAL = 15.0
HTTPX_TIMEOUT = 10.0

# =============================================================================
# External API URLs
# =============================================================================
TMDB_API_BASE_URL = "https://api.themoviedb.org/3"
TRAKT_API_BASE_URL = "https://api.trakt.tv"
TRAKT_API_VERSION = "2"
MDBLIST_API_BASE_URL = "https://api.mdblist.com"

# =============================================================================
# Discovery fetch limits
# =============================================================================
TMDB_PAGE_SIZE = 20
TMDB_MAX_DISCOVER_PAGES = 5
TRAKT_PAGE_LIMIT = 100
RECENT_WATCH_SEEDS = 10  # Seeds for TMDB recommendations
TOP_RATED_SEEDS = 10  # Seeds for TMDB similar
TOP_RATED_MIN_RATING = 8.0  # On a 0-10 scale
SEED_RESULTS_PER_ITEM = 10  # Results kept per seed item
MAX_CAST_MEMBERS = 10
ENRICHMENT_BATCH_SIZE = 5
POOL_ENRICHMENT_BATCH_SIZE = 10

# =============================================================================
# Scoring
# =============================================================================
NEUTRAL_SCORE = 0.5
RECENCY_HORIZON_YEARS = 10
DIVERSITY_GENRE_SHARE = 0.6
DIVERSITY_PROVIDER_SHARE = 0.4

# Static provenance priority, higher means a more personal signal
SOURCE_PRIORITY = {
    "trakt_recommendations": 1.0,
    "tmdb_recommendations": 0.9,
    "tmdb_similar": 0.85,
    "mdblist": 0.6,
    "trakt_trending": 0.7,
    "trakt_popular": 0.6,
    "tmdb_discover": 0.5,
}

# =============================================================================
# TMDB genres (list endpoints only return ids)
# =============================================================================
TMDB_MOVIE_GENRES = {
    28: "Action",
    12: "Adventure",
    16: "Animation",
    35: "Comedy",
    80: "Crime",
    99: "Documentary",
    18: "Drama",
    10751: "Family",
    14: "Fantasy",
    36: "History",
    27: "Horror",
    10402: "Music",
    9648: "Mystery",
    10749: "Romance",
    878: "Science Fiction",
    10770: "TV Movie",
    53: "Thriller",
    10752: "War",
    37: "Western",
}
TMDB_TV_GENRES = {
    10759: "Action & Adventure",
    16: "Animation",
    35: "Comedy",
    80: "Crime",
    99: "Documentary",
    18: "Drama",
    10751: "Family",
    10762: "Kids",
    9648: "Mystery",
    10763: "News",
    10764: "Reality",
    10765: "Sci-Fi & Fantasy",
    10766: "Soap",
    10767: "Talk",
    10768: "War & Politics",
    37: "Western",
}
