"""Fakes shared by the tunefind test-suite."""

from __future__ import annotations

import json
import threading
from typing import Any, Callable
from unittest.mock import Mock

from tunefind.catalog import CatalogTrack
from tunefind.config import Settings
from tunefind.recognize import RecognizedTrack
from tunefind.upload_gate import UploadedAudio


class FakeResponse:
    def __init__(self, status_code: int = 200, payload: Any = None, text: str | None = None) -> None:
        self.status_code = status_code
        self._payload = payload
        self.text = text if text is not None else json.dumps(payload)

    @property
    def ok(self) -> bool:
        return self.status_code < 400

    def json(self) -> Any:
        if self._payload is None:
            raise ValueError("No JSON body")
        return self._payload


class FakeOAuthSession:
    """Stands in for ``requests_oauthlib.OAuth2Session``."""

    def __init__(self, response: FakeResponse | None = None, token_error: Exception | None = None) -> None:
        self.response = response or FakeResponse(payload={"tracks": {"items": []}})
        self.token_error = token_error
        self.search_error: Exception | None = None
        self.token_calls: list[dict[str, Any]] = []
        self.get_calls: list[tuple[str, dict[str, Any]]] = []
        self.closed = False

    def fetch_token(self, **kwargs: Any) -> dict[str, Any]:
        self.token_calls.append(kwargs)
        if self.token_error is not None:
            raise self.token_error
        return {"access_token": "token-value", "token_type": "Bearer", "expires_in": 3600}

    def get(self, url: str, **kwargs: Any) -> FakeResponse:
        self.get_calls.append((url, kwargs))
        if self.search_error is not None:
            raise self.search_error
        return self.response

    def close(self) -> None:
        self.closed = True


def make_settings(**overrides: Any) -> Settings:
    values: dict[str, Any] = {
        "rapid_api_key": "rapid-key",
        "spotify_client_id": "client-id",
        "spotify_client_secret": "client-secret",
        "http_timeout": 5.0,
    }
    values.update(overrides)
    return Settings(**values)


def make_audio(content_type: str = "audio/mpeg", filename: str = "clip.mp3") -> UploadedAudio:
    return UploadedAudio(filename=filename, content_type=content_type, data=b"ID3\x00fake-audio")


def spotify_item(track_id: str, name: str | None, artists: list[str] | None, **extra: Any) -> dict[str, Any]:
    item: dict[str, Any] = {
        "id": track_id,
        "name": name,
        "artists": [{"name": a} for a in artists] if artists is not None else None,
        "album": {
            "name": f"{name} (album)",
            "images": [
                {"url": f"https://i.scdn.co/{track_id}-64", "height": 64, "width": 64},
                {"url": f"https://i.scdn.co/{track_id}-640", "height": 640, "width": 640},
            ],
            "release_date": "2023-01-13",
        },
        "preview_url": None,
        "external_urls": {"spotify": f"https://open.spotify.com/track/{track_id}"},
        "popularity": 88,
        "duration_ms": 200600,
    }
    item.update(extra)
    return item


def search_payload(*items: dict[str, Any]) -> dict[str, Any]:
    return {"tracks": {"items": list(items)}}


def fake_recognizer(track: RecognizedTrack | None = None, error: Exception | None = None) -> Mock:
    recognizer = Mock()
    if error is not None:
        recognizer.recognize.side_effect = error
    else:
        recognizer.recognize.return_value = track or RecognizedTrack(
            title="Flowers", subtitle="Miley Cyrus", metadata={"key": "1"}
        )
    return recognizer


def fake_resolver(track: CatalogTrack | None = None, error: Exception | None = None) -> Mock:
    resolver = Mock()
    if error is not None:
        resolver.resolve.side_effect = error
    else:
        resolver.resolve.return_value = track or CatalogTrack.from_api(
            spotify_item("0yLdNVWF3Srea0uzk55zFn", "Flowers", ["Miley Cyrus"])
        )
    return resolver


class InterleavingLock:
    """Reentrant lock that runs ``hook`` once, right after its outermost release.

    Swapped in for ``PipelineController._lock`` to run a second upload in the
    window a concurrent request would see between two locked sections.
    """

    def __init__(self) -> None:
        self._inner = threading.RLock()
        self._depth = 0
        self.hook: Callable[[], None] | None = None

    def __enter__(self) -> "InterleavingLock":
        self._inner.acquire()
        self._depth += 1
        return self

    def __exit__(self, *exc: Any) -> None:
        self._depth -= 1
        hook = None
        if self._depth == 0 and self.hook is not None:
            hook, self.hook = self.hook, None
        self._inner.release()
        if hook is not None:
            hook()
