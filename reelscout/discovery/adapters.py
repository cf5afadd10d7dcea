"""Per-source adapters turning raw API payloads into RawCandidate records."""

from dataclasses import replace
from typing import Any

from reelscout.constants import MAX_CAST_MEMBERS, TMDB_MOVIE_GENRES, TMDB_TV_GENRES
from reelscout.discovery.types import CastMember, DiscoverySource, Genre, RawCandidate
from reelscout.models.media import MediaType


def genre_table(media_type: MediaType) -> dict[int, str]:
    return TMDB_MOVIE_GENRES if media_type is MediaType.MOVIE else TMDB_TV_GENRES


def _year(date: str | None) -> int | None:
    if date and len(date) >= 4 and date[:4].isdigit():
        return int(date[:4])
    return None


def _genres_from_ids(ids: list[int], media_type: MediaType) -> tuple[Genre, ...]:
    table = genre_table(media_type)
    return tuple(Genre(id=gid, name=table[gid]) for gid in ids if gid in table)


def _genres_from_slugs(slugs: list[str], media_type: MediaType) -> tuple[Genre, ...]:
    by_name = {name.lower(): gid for gid, name in genre_table(media_type).items()}
    genres = []
    for slug in slugs:
        name = slug.replace("-", " ").title()
        gid = by_name.get(name.lower())
        if gid is not None:
            genres.append(Genre(id=gid, name=genre_table(media_type)[gid]))
    return tuple(genres)


def from_tmdb_result(
    item: dict[str, Any],
    media_type: MediaType,
    source: DiscoverySource,
    source_media_id: int | None = None,
) -> RawCandidate:
    """Adapt a discover/recommendations/similar list entry."""
    if media_type is MediaType.MOVIE:
        title = item.get("title") or item.get("original_title") or ""
        original_title = item.get("original_title")
        date = item.get("release_date")
    else:
        title = item.get("name") or item.get("original_name") or ""
        original_title = item.get("original_name")
        date = item.get("first_air_date")

    return RawCandidate(
        tmdb_id=int(item["id"]),
        media_type=media_type,
        title=title,
        source=source,
        original_title=original_title,
        original_language=item.get("original_language"),
        release_year=_year(date),
        overview=item.get("overview") or None,
        genres=_genres_from_ids(item.get("genre_ids") or [], media_type),
        poster_path=item.get("poster_path"),
        backdrop_path=item.get("backdrop_path"),
        vote_average=item.get("vote_average"),
        vote_count=item.get("vote_count"),
        popularity=item.get("popularity"),
        source_media_id=source_media_id,
    )


def from_trakt_item(
    item: dict[str, Any], media_type: MediaType, source: DiscoverySource
) -> RawCandidate | None:
    """Adapt a Trakt list entry; None when Trakt has no TMDB id for it.

    Trending/watched entries wrap the title ({"watchers": n, "movie": {...}}),
    popular and recommendation entries are the bare title object.
    """
    media = item.get("movie") or item.get("show") or item
    ids = media.get("ids") or {}
    tmdb_id = ids.get("tmdb")
    if not tmdb_id:
        return None

    watchers = item.get("watchers") or item.get("watcher_count") or 0
    return RawCandidate(
        tmdb_id=int(tmdb_id),
        media_type=media_type,
        title=media.get("title") or "",
        source=source,
        imdb_id=ids.get("imdb"),
        release_year=media.get("year"),
        overview=media.get("overview") or None,
        genres=_genres_from_slugs(media.get("genres") or [], media_type),
        vote_average=media.get("rating"),
        vote_count=media.get("votes"),
        popularity=float(watchers),
        network=media.get("network"),
    )


def from_mdblist_item(item: dict[str, Any], media_type: MediaType) -> RawCandidate | None:
    """Adapt an MDBList list item; None without a TMDB id."""
    tmdb_id = item.get("tmdb_id")
    if not tmdb_id:
        return None
    return RawCandidate(
        tmdb_id=int(tmdb_id),
        media_type=media_type,
        title=item.get("title") or "",
        source="mdblist",
        imdb_id=item.get("imdb_id"),
        release_year=item.get("release_year") or item.get("year"),
    )


def apply_tmdb_details(
    candidate: RawCandidate, details: dict[str, Any], full: bool = False
) -> RawCandidate:
    """Merge a TMDB details payload into a candidate.

    Basic mode only fills what the cheap list payload left empty (artwork,
    overview, language, genres, votes). Full mode also adds credits, runtime
    and tagline.
    """
    is_movie = candidate.media_type is MediaType.MOVIE
    external_ids = details.get("external_ids") or {}
    genres = tuple(
        Genre(id=g["id"], name=g["name"]) for g in details.get("genres") or [] if "id" in g
    )
    date = details.get("release_date") if is_movie else details.get("first_air_date")
    original_title = details.get("original_title") if is_movie else details.get("original_name")

    updates: dict[str, Any] = {
        "imdb_id": candidate.imdb_id or details.get("imdb_id") or external_ids.get("imdb_id"),
        "original_title": candidate.original_title or original_title,
        "original_language": candidate.original_language or details.get("original_language"),
        "release_year": candidate.release_year or _year(date),
        "overview": candidate.overview or details.get("overview") or None,
        "genres": candidate.genres or genres,
        "poster_path": candidate.poster_path or details.get("poster_path"),
        "backdrop_path": candidate.backdrop_path or details.get("backdrop_path"),
        "vote_average": candidate.vote_average or details.get("vote_average"),
        "vote_count": candidate.vote_count or details.get("vote_count"),
    }
    if not candidate.title:
        updates["title"] = (details.get("title") if is_movie else details.get("name")) or ""
    if not is_movie and not candidate.network:
        networks = details.get("networks") or []
        if networks:
            updates["network"] = networks[0].get("name")

    if full:
        credits = details.get("credits") or {}
        updates["cast_members"] = tuple(
            CastMember(
                id=actor["id"],
                name=actor["name"],
                character=actor.get("character"),
                profile_path=actor.get("profile_path"),
            )
            for actor in (credits.get("cast") or [])[:MAX_CAST_MEMBERS]
        )
        if is_movie:
            updates["directors"] = tuple(
                crew["name"] for crew in credits.get("crew") or [] if crew.get("job") == "Director"
            )
            updates["runtime_minutes"] = details.get("runtime") or None
        else:
            updates["directors"] = tuple(c["name"] for c in details.get("created_by") or [])
            runtimes = details.get("episode_run_time") or []
            updates["runtime_minutes"] = runtimes[0] if runtimes else None
        updates["tagline"] = details.get("tagline") or None

    return replace(candidate, **updates)
