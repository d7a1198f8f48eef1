from dataclasses import dataclass, field
from typing import Optional

from .errors import InvalidFileType

ACCEPTED_EXTENSIONS = (".mp3", ".wav", ".m4a", ".flac", ".ogg")
_SIZE_UNITS = ("Bytes", "KB", "MB", "GB")


@dataclass(frozen=True)
class UploadedAudio:
    filename: str
    content_type: str
    data: bytes = field(repr=False)

    @property
    def size(self) -> int:
        return len(self.data)

    @property
    def size_label(self) -> str:
        return format_file_size(self.size)

    @property
    def format_label(self) -> str:
        _, _, subtype = self.content_type.partition("/")
        return subtype.split(";")[0].strip().upper()


def format_file_size(num_bytes: int) -> str:
    if num_bytes <= 0:
        return "0 Bytes"
    idx = 0
    while idx < len(_SIZE_UNITS) - 1 and num_bytes >= 1024 ** (idx + 1):
        idx += 1
    value = round(num_bytes / 1024 ** idx, 2)
    # 1.50 -> "1.5", 2.00 -> "2"
    return f"{value:g} {_SIZE_UNITS[idx]}"


def is_audio(content_type: Optional[str]) -> bool:
    return bool(content_type) and content_type.strip().lower().startswith("audio/")


def accept_upload(filename: Optional[str], content_type: Optional[str], data: bytes) -> UploadedAudio:
    """Validate a candidate file and wrap it for the pipeline.

    Only the declared media type is checked; size and codec are left to the
    recognition service. Raises InvalidFileType for anything not ``audio/*``.
    """
    if not is_audio(content_type):
        raise InvalidFileType()
    return UploadedAudio(
        filename=filename or "upload",
        content_type=content_type.strip().lower(),
        data=bytes(data),
    )


def accepted_message(audio: UploadedAudio) -> str:
    return f"{audio.filename} uploaded successfully!"
