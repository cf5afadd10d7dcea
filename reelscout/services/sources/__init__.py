"""Recommendation source clients (TMDB, Trakt, MDBList)."""

from reelscout.services.sources.mdblist import MDBListClient
from reelscout.services.sources.tmdb import TMDBClient
from reelscout.services.sources.trakt import TraktClient

__all__ = ["MDBListClient", "TMDBClient", "TraktClient"]
