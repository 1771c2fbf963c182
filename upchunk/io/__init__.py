"""Input/Output collaborators for upchunk.

Upload sessions depend on two narrow contracts defined here: a FileSource
that reports a length and opens byte ranges lazily, and a Transport that
PUTs one range and reports a TransportOutcome.

Modules:

files : module
    FileSource protocol, LocalFile, and best-effort MIME inference.
transport : module
    Transport protocol, RequestsTransport, CancelToken and ChunkBody.

Example:
    from upchunk.io import LocalFile, RequestsTransport

    source = LocalFile("video.mp4")
    transport = RequestsTransport(read_timeout=30)
"""

from .files import (
    DEFAULT_CONTENT_TYPE,
    FileSource,
    LocalFile,
    guess_content_type,
)
from .transport import (
    CancelToken,
    ChunkBody,
    RequestsTransport,
    TransferCancelled,
    Transport,
    make_session,
)

__all__ = [
    "DEFAULT_CONTENT_TYPE",
    "FileSource",
    "LocalFile",
    "guess_content_type",
    "CancelToken",
    "ChunkBody",
    "RequestsTransport",
    "TransferCancelled",
    "Transport",
    "make_session",
]
