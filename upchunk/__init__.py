"""
upchunk - resumable chunked uploads over range-PUT

A Python library and CLI for uploading large files over unreliable networks.
Files are split into sequential byte-range chunks and sent one at a time as
PUT requests carrying a Content-Range header. Transient failures are
retried per chunk, connectivity loss pauses the upload, and nothing the
server already confirmed is sent twice.

upchunk provides:
  - Chunk planning with exact Content-Range headers
  - Per-chunk retry budget with fixed or exponential backoff
  - Status code classification (success / retryable / fatal)
  - Pause, resume and cancel, including in the middle of a request
  - Automatic pause/resume on connectivity changes
  - Layered YAML / .env configuration

Quick Start
-----------
Upload a file:

    $ upchunk upload video.mp4 https://uploads.example.com/abc

Show how a file would be chunked:

    $ upchunk plan video.mp4 --chunk-size-mb 8

For full CLI documentation:

    $ upchunk --help

Package Structure
-----------------
cli : module
    Command-line interface with argparse.
core : module
    High-level orchestration functions.
session : module
    The upload session engine and its state machine.
chunking, classify, retry : modules
    Chunk planning, outcome classification and retry policy.
connectivity : module
    Connectivity sources and the pause/resume bridge.
config : package
    YAML / environment configuration loading.
io : package
    File access and the HTTP transport.

Public API
----------
    from upchunk import UploadSession, upload_file, load_config
    from upchunk.connectivity import ConnectivityBridge, ManualConnectivitySource

For more details, see the individual module docstrings.
"""

__version__ = "0.1.0"
__license__ = "Apache-2.0"
__description__ = "Resumable chunked uploads over range-PUT"

# Re-export commonly used names for convenience
from upchunk.chunking import Chunk, plan_chunks
from upchunk.config import UploadConfig, load_config
from upchunk.core import plan_upload, upload_file
from upchunk.session import SessionState, UploadSession

__all__ = [
    "__version__",
    "__license__",
    "__description__",
    "Chunk",
    "plan_chunks",
    "UploadConfig",
    "load_config",
    "plan_upload",
    "upload_file",
    "SessionState",
    "UploadSession",
]
