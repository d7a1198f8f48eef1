from typing import Optional


class TunefindError(Exception):
    """Base class for every failure the pipeline reports to the user."""

    code = "tunefind_error"
    default_message = "An unexpected error occurred. Please try again."

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class InvalidFileType(TunefindError):
    code = "invalid_file_type"
    default_message = "Please upload a valid audio file (MP3, WAV, etc.)"


class NoMatchFound(TunefindError):
    code = "no_match_found"
    default_message = "Could not identify the song. Try a clearer audio file."


class RecognitionTransportError(TunefindError):
    code = "recognition_transport_error"
    default_message = "Analysis failed. Please try again."


class CatalogAuthError(TunefindError):
    code = "catalog_auth_error"
    default_message = "Could not authenticate with Spotify."


class CatalogTransportError(TunefindError):
    code = "catalog_transport_error"
    default_message = "Error searching Spotify"


class ConfigurationError(TunefindError):
    code = "configuration_error"
    default_message = "Service is not configured."

    @classmethod
    def missing(cls, variable: str) -> "ConfigurationError":
        return cls(f"{variable} is not configured")


class RunSuperseded(TunefindError):
    # raised inside a stale run; never shown to the user
    code = "run_superseded"
    default_message = "A newer upload replaced this scan."


class NoPendingUpload(TunefindError):
    code = "no_pending_upload"
    default_message = "Upload an audio file first."
