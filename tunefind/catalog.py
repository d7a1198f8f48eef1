"""Catalog resolver - recognised track to playable Spotify track.

Given a :class:`~tunefind.recognize.RecognizedTrack`, this module finds the
corresponding entry in the Spotify catalog with two sequential calls:

1. **Token**: a client-credentials grant against the accounts service,
   authenticated with HTTP Basic (client id / secret). A fresh token is
   fetched for every resolution; it is never cached, persisted or logged.
2. **Search**: ``GET /v1/search`` with ``q="<title> <subtitle>"``,
   ``type=track`` and ``limit=5``, authenticated with the bearer token.

The returned candidates are then matched:

- the first candidate whose name equals the recognised title *and* one of
  whose artists equals the recognised subtitle (both case-insensitive,
  exact equality) wins, whatever its position;
- otherwise the first candidate in Spotify's own ranking is used.

Candidates with no name or no named artists can never win the exact branch
but can still be the fallback. An empty result set is a ``NoMatchFound``.
"""

import logging
from typing import Any, Callable, List, Optional

import requests
from oauthlib.oauth2 import BackendApplicationClient, OAuth2Error
from pydantic import BaseModel, Field, ValidationError
from requests.auth import HTTPBasicAuth
from requests_oauthlib import OAuth2Session

from .config import Settings
from .errors import CatalogAuthError, CatalogTransportError, NoMatchFound
from .recognize import RecognizedTrack

logger = logging.getLogger(__name__)

SEARCH_LIMIT = 5
EMBED_URL = "https://open.spotify.com/embed/track/{track_id}?utm_source=generator&theme=0"


# ---------- MODELS ----------
class AlbumImage(BaseModel):
    url: str
    height: Optional[int] = None
    width: Optional[int] = None


class CatalogTrack(BaseModel):
    id: str
    name: Optional[str] = None
    artist_names: List[str] = Field(default_factory=list)
    album_name: Optional[str] = None
    album_images: List[AlbumImage] = Field(default_factory=list)
    preview_url: Optional[str] = None
    external_url: Optional[str] = None
    popularity: int = 0
    duration_ms: int = 0
    release_date: Optional[str] = None

    @classmethod
    def from_api(cls, item: dict) -> "CatalogTrack":
        """Flatten one ``tracks.items[]`` entry of the search response."""
        album = item.get("album") or {}
        external = item.get("external_urls") or {}
        images = [img for img in (album.get("images") or []) if isinstance(img, dict) and img.get("url")]
        # largest first; Spotify already orders them this way but not every mirror does
        images.sort(key=lambda img: img.get("height") or 0, reverse=True)
        return cls(
            id=item["id"],
            name=item.get("name"),
            artist_names=[a["name"] for a in (item.get("artists") or []) if isinstance(a, dict) and a.get("name")],
            album_name=album.get("name"),
            album_images=images,
            preview_url=item.get("preview_url"),
            external_url=external.get("spotify"),
            popularity=item.get("popularity") or 0,
            duration_ms=item.get("duration_ms") or 0,
            release_date=album.get("release_date"),
        )

    @property
    def embed_url(self) -> str:
        return embed_url(self.id)

    @property
    def release_year(self) -> Optional[int]:
        if not self.release_date:
            return None
        year = self.release_date[:4]
        return int(year) if year.isdigit() else None

    @property
    def duration_label(self) -> str:
        minutes, rest = divmod(max(self.duration_ms, 0), 60000)
        return f"{minutes}:{rest // 1000:02d}"

    @property
    def cover_url(self) -> Optional[str]:
        return self.album_images[0].url if self.album_images else None


def embed_url(track_id: str) -> str:
    """Read-only player reference for a catalog track; no API call needed."""
    return EMBED_URL.format(track_id=track_id)


# ---------- MATCHING ----------
def is_exact_match(candidate: CatalogTrack, recognized: RecognizedTrack) -> bool:
    name = (candidate.name or "").lower()
    artists = [a.lower() for a in candidate.artist_names if a]
    if not name or not artists:
        return False
    return name == recognized.title.lower() and recognized.subtitle.lower() in artists


def select_best_match(recognized: RecognizedTrack, candidates: List[CatalogTrack]) -> CatalogTrack:
    if not candidates:
        raise NoMatchFound("No tracks found on Spotify")
    for candidate in candidates:
        if is_exact_match(candidate, recognized):
            return candidate
    return candidates[0]


def parse_search(body: Any) -> List[CatalogTrack]:
    """Candidates of a search response, in Spotify's order.

    A body without a ``tracks`` object is malformed. Single items that cannot
    be read (``null`` entries, a missing ``id``) are skipped.
    """
    if not isinstance(body, dict) or not isinstance(body.get("tracks"), dict):
        raise CatalogTransportError("Unexpected response from Spotify search.")
    items = body["tracks"].get("items")
    if items is None:
        return []
    if not isinstance(items, list):
        raise CatalogTransportError("Unexpected response from Spotify search.")
    tracks: List[CatalogTrack] = []
    for item in items:
        try:
            tracks.append(CatalogTrack.from_api(item))
        except (KeyError, TypeError, AttributeError, ValidationError):
            logger.debug("Skipping unusable search item %r", item)
    return tracks


# ---------- RESOLVER ----------
def _default_session_factory(client_id: str) -> OAuth2Session:
    return OAuth2Session(client=BackendApplicationClient(client_id=client_id))


class CatalogResolver:
    def __init__(
        self,
        settings: Settings,
        session_factory: Callable[[str], OAuth2Session] = _default_session_factory,
    ):
        self.settings = settings
        self.session_factory = session_factory

    def _authorized_session(self) -> OAuth2Session:
        client_id, client_secret = self.settings.require_spotify_credentials()
        session = self.session_factory(client_id)
        try:
            session.fetch_token(
                token_url=self.settings.spotify_token_url,
                auth=HTTPBasicAuth(client_id, client_secret),
                timeout=self.settings.http_timeout,
            )
        except OAuth2Error as exc:
            logger.warning("Spotify token request rejected: %s", exc.error)
            session.close()
            raise CatalogAuthError()
        except (requests.RequestException, ValueError) as exc:
            logger.warning("Spotify token request failed: %s", exc.__class__.__name__)
            session.close()
            raise CatalogAuthError()
        return session

    def search(self, session: OAuth2Session, query: str) -> List[CatalogTrack]:
        params = {"q": query, "type": "track", "limit": SEARCH_LIMIT}
        try:
            resp = session.get(
                self.settings.spotify_search_url,
                params=params,
                timeout=self.settings.http_timeout,
            )
        except (requests.RequestException, OAuth2Error) as exc:
            logger.warning("Spotify search failed: %s", exc.__class__.__name__)
            raise CatalogTransportError()
        if resp.status_code != 200:
            logger.warning("Spotify search error %s: %s", resp.status_code, resp.text[:200])
            raise CatalogTransportError()
        try:
            body = resp.json()
        except ValueError:
            raise CatalogTransportError("Unexpected response from Spotify search.")
        return parse_search(body)

    def resolve(
        self,
        recognized: RecognizedTrack,
        on_authorized: Optional[Callable[[], None]] = None,
    ) -> CatalogTrack:
        """Token, search, match. ``on_authorized`` runs between token and search."""
        session = self._authorized_session()
        try:
            if on_authorized is not None:
                on_authorized()
            candidates = self.search(session, recognized.search_query)
        finally:
            session.close()
        track = select_best_match(recognized, candidates)
        logger.info(
            "Resolved %r to Spotify track %s (%d candidates, exact=%s)",
            recognized.search_query,
            track.id,
            len(candidates),
            is_exact_match(track, recognized),
        )
        return track
