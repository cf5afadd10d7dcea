"""reelscout: discovery of unseen movies and series for media-library users."""

__version__ = "0.1.0"
