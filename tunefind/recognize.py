"""Recognition client for the audio-fingerprinting service.

The uploaded clip is posted as a single multipart field (``upload_file``) to
the RapidAPI-hosted Shazam endpoint. The service answers with

    {"matches": [...], "track": {"title": ..., "subtitle": ..., ...}}

and an empty or absent ``matches`` list means the clip was not recognised.
Only the top guess is kept; ``track`` as a whole is carried along as opaque
metadata for the result card.

No retries happen here. A caller that wants another attempt re-invokes
:meth:`RecognitionClient.recognize` with the same file.
"""

import logging
from typing import Any, Dict, Optional

import requests
from pydantic import BaseModel, Field

from .config import Settings
from .errors import NoMatchFound, RecognitionTransportError
from .upload_gate import UploadedAudio

logger = logging.getLogger(__name__)

UPLOAD_FIELD = "upload_file"


# ---------- MODELS ----------
class RecognizedTrack(BaseModel):
    title: str
    subtitle: str
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @property
    def search_query(self) -> str:
        return f"{self.title} {self.subtitle}"


# ---------- RESPONSE PARSING ----------
def _service_message(resp: requests.Response) -> Optional[str]:
    try:
        body = resp.json()
    except ValueError:
        return None
    if isinstance(body, dict):
        message = body.get("message")
        if isinstance(message, str) and message.strip():
            return message.strip()
    return None


def parse_recognition(body: Any) -> RecognizedTrack:
    """Turn a recognition response body into a RecognizedTrack.

    Raises NoMatchFound for an empty match list and RecognitionTransportError
    when the body does not have the expected shape.
    """
    if not isinstance(body, dict):
        raise RecognitionTransportError("Unexpected response from the recognition service.")
    matches = body.get("matches")
    if not matches:
        raise NoMatchFound()
    if not isinstance(matches, list):
        raise RecognitionTransportError("Unexpected response from the recognition service.")
    track = body.get("track")
    if not isinstance(track, dict):
        raise RecognitionTransportError("Recognition response is missing the matched track.")
    title = track.get("title")
    subtitle = track.get("subtitle")
    if not isinstance(title, str) or not isinstance(subtitle, str):
        raise RecognitionTransportError("Recognition response is missing the track title.")
    return RecognizedTrack(title=title, subtitle=subtitle, metadata=dict(track))


# ---------- CLIENT ----------
class RecognitionClient:
    def __init__(self, settings: Settings, session: Optional[requests.Session] = None):
        self.settings = settings
        self.session = session or requests.Session()

    def recognize(self, audio: UploadedAudio) -> RecognizedTrack:
        """Upload ``audio`` to the recognition endpoint and parse the top match."""
        api_key = self.settings.require_rapid_api_key()
        headers = {
            "x-rapidapi-host": self.settings.rapid_api_host,
            "x-rapidapi-key": api_key,
        }
        files = {UPLOAD_FIELD: (audio.filename, audio.data, audio.content_type)}
        try:
            resp = self.session.post(
                self.settings.recognition_url,
                files=files,
                headers=headers,
                timeout=self.settings.http_timeout,
            )
        except requests.Timeout:
            logger.warning("Recognition request timed out after %ss", self.settings.http_timeout)
            raise RecognitionTransportError()
        except requests.RequestException as exc:
            logger.warning("Recognition request failed: %s", exc.__class__.__name__)
            raise RecognitionTransportError()

        if not resp.ok:
            logger.warning("Recognition API error %s: %s", resp.status_code, resp.text[:200])
            raise RecognitionTransportError(_service_message(resp))

        try:
            body = resp.json()
        except ValueError:
            raise RecognitionTransportError("Unexpected response from the recognition service.")
        track = parse_recognition(body)
        logger.info("Recognised %r by %r", track.title, track.subtitle)
        return track
