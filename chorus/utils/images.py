"""Image attachment helpers."""

import base64
import mimetypes
from pathlib import Path


def to_data_uri(source: str, default_mime: str = "image/jpeg") -> str:
    """Return ``source`` as something a provider can receive.

    Data URIs and remote URLs pass through unchanged; local paths (plain or
    ``file://``) are read and base64-encoded.

    Raises:
        OSError: If a local file cannot be read
    """
    if source.startswith(("data:", "http://", "https://")):
        return source

    path = Path(source.removeprefix("file://"))
    mime_type = mimetypes.guess_type(path.name)[0] or default_mime
    encoded = base64.b64encode(path.read_bytes()).decode("ascii")
    return f"data:{mime_type};base64,{encoded}"
