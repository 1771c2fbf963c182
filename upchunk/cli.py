# Copyright 2025 Roger Cibrian
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""Command-line interface for upchunk.

Commands:

    upload: Upload a file to a URI with range-PUT requests
    plan: Show how a file would be chunked (no network calls)

Example:
    Upload a file:
        ```bash
        $ upchunk upload video.mp4 https://uploads.example.com/abc
        ```

    Pause automatically while offline:
        ```bash
        $ upchunk upload video.mp4 https://uploads.example.com/abc --watch-network
        ```

    Inspect the chunk plan:
        ```bash
        $ upchunk plan video.mp4 --chunk-size-mb 8
        ```

Exit Codes:

- 0: Success
- 1: Error (configuration, file, or upload failure)
- 130: Interrupted (Ctrl-C cancels the upload)

Note:
    Verbose mode shows full tracebacks on errors for debugging.
    Debug mode implies verbose mode and shows request headers.
"""

from __future__ import annotations

import argparse
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path
import sys
import traceback
from typing import Any

from upchunk import __version__
from upchunk.config import load_config
from upchunk.connectivity import PollingConnectivityMonitor
from upchunk.core import plan_upload, upload_file
from upchunk.exceptions import (
    CancelledByCaller,
    ConfigError,
    FatalUploadError,
    InitializationError,
    UpChunkError,
)
from upchunk.logging import get_logger, set_global_logger


def _package_version() -> str:
    try:
        return version("upchunk")
    except PackageNotFoundError:
        return __version__


def _parse_header(raw: str) -> tuple[str, str]:
    name, sep, value = raw.partition(":")
    if not sep or not name.strip():
        raise argparse.ArgumentTypeError(f"expected 'Name: value', got {raw!r}")
    return name.strip(), value.strip()


def _overrides_from_args(args: argparse.Namespace) -> dict[str, Any]:
    overrides: dict[str, Any] = {}
    if getattr(args, "chunk_size_mb", None) is not None:
        overrides.setdefault("upload", {})["chunk_size_mb"] = args.chunk_size_mb
    if getattr(args, "max_retries", None) is not None:
        overrides.setdefault("upload", {})["max_retries"] = args.max_retries
    if getattr(args, "retry_strategy", None) is not None:
        overrides.setdefault("retry", {})["strategy"] = args.retry_strategy
    headers = getattr(args, "header", None)
    if headers:
        overrides.setdefault("http", {})["headers"] = dict(headers)
    return overrides


def _print_error(err: BaseException, args: argparse.Namespace) -> None:
    print(f"Error: {err}")
    if getattr(args, "verbose", False) or getattr(args, "debug", False):
        traceback.print_exc()


def cmd_upload(args: argparse.Namespace) -> int:
    """Handler for 'upchunk upload' command.

    Loads configuration, uploads the file chunk by chunk, and prints a
    summary. With --watch-network a background probe pauses the upload
    while the network is unreachable.

    Args:
        args: Parsed command-line arguments.

    Returns:
        Exit code (0 for success, 1 for failure, 130 if interrupted).
    """
    logger = get_logger(verbose=args.verbose, debug=args.debug)
    set_global_logger(logger)

    file_path = Path(args.file).resolve()
    if not file_path.is_file():
        print(f"Error: File not found: {file_path}")
        return 1

    try:
        config = load_config(
            Path(args.config) if args.config else None,
            overrides=_overrides_from_args(args),
        )
    except ConfigError as err:
        _print_error(err, args)
        return 1

    print(f"Uploading: {file_path}")
    print(f"Destination: {args.url}")
    print()

    monitor = None
    if args.watch_network:
        monitor = PollingConnectivityMonitor.from_settings(config.connectivity)
        monitor.start()

    def on_progress(percent: float) -> None:
        print(f"upload progress: {percent:.0f}%", end="\r", flush=True)

    def on_retrying(waiting_for_network: bool) -> None:
        if waiting_for_network:
            print("\n[NETWORK] Offline, waiting for network...")
        else:
            logger.verbose("RETRY", "Retrying...")

    try:
        result = upload_file(
            file_path,
            args.url,
            config=config,
            content_type=args.content_type,
            connectivity=monitor,
            on_progress=on_progress,
            on_retrying=on_retrying,
        )
    except KeyboardInterrupt:
        print("\nUpload cancelled.")
        return 130
    except CancelledByCaller as err:
        _print_error(err, args)
        return 130
    except (InitializationError, FatalUploadError) as err:
        print()
        _print_error(err, args)
        return 1
    except UpChunkError as err:
        # Catch any other upchunk errors we might have missed
        print()
        _print_error(err, args)
        return 1
    finally:
        if monitor is not None:
            monitor.stop(timeout=1.0)

    print()
    print("=" * 70)
    print("UPLOAD RESULTS")
    print("=" * 70)
    print(f"File:            {result.file_path}")
    print(f"Destination:     {result.uri}")
    print(f"Size:            {result.total_bytes} bytes")
    print(f"Chunks:          {result.chunk_count}")
    print(f"Content-Type:    {result.content_type}")
    print(f"Retries:         {result.retries}")
    print(f"Elapsed:         {result.elapsed:.1f}s")
    print(f"Status:          {result.state}")
    print("=" * 70)
    print()
    print("[SUCCESS] Upload complete!")
    return 0


def cmd_plan(args: argparse.Namespace) -> int:
    """Handler for 'upchunk plan' command.

    Prints the chunk ranges and Content-Range headers a file would be
    uploaded with. Makes no network calls.

    Args:
        args: Parsed command-line arguments.

    Returns:
        Exit code (0 for success, 1 for failure).
    """
    logger = get_logger(verbose=args.verbose, debug=False)
    set_global_logger(logger)

    file_path = Path(args.file).resolve()
    try:
        config = load_config(
            Path(args.config) if args.config else None,
            overrides=_overrides_from_args(args),
        )
        plan = plan_upload(file_path, config=config)
    except (ConfigError, InitializationError) as err:
        _print_error(err, args)
        return 1

    print("=" * 70)
    print("UPLOAD PLAN")
    print("=" * 70)
    print(f"File:            {plan.file_path}")
    print(f"Size:            {plan.total_bytes} bytes")
    print(f"Chunk Size:      {plan.chunk_size} bytes")
    print(f"Chunks:          {len(plan.chunks)}")
    print(f"Content-Type:    {plan.content_type}")
    print("=" * 70)
    for index, content_range in enumerate(plan.content_ranges(), start=1):
        print(f"  [{index}] Content-Range: {content_range}")
    return 0


def _add_common_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--config",
        default=None,
        help="YAML configuration file (default: built-in defaults + environment)",
    )
    parser.add_argument(
        "--chunk-size-mb",
        type=float,
        default=None,
        help="Chunk size in MiB (default: 5)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Show progress and high-level status updates",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="upchunk",
        description="upchunk - resumable chunked uploads over range-PUT",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"upchunk {_package_version()}",
    )

    subparsers = parser.add_subparsers(
        dest="command",
        help="Available commands",
        required=True,
    )

    # 'upload' command
    parser_upload = subparsers.add_parser(
        "upload",
        help="Upload a file with range-PUT requests",
        description="Split a file into chunks and PUT them one at a time, retrying transient failures.",
    )
    parser_upload.add_argument("file", help="Path to the file to upload")
    parser_upload.add_argument("url", help="Destination URI for the PUT requests")
    _add_common_options(parser_upload)
    parser_upload.add_argument(
        "--max-retries",
        type=int,
        default=None,
        help="Retries allowed per chunk (default: 5)",
    )
    parser_upload.add_argument(
        "--retry-strategy",
        choices=("fixed", "exponential"),
        default=None,
        help="Backoff between retries (default: fixed, 1 second)",
    )
    parser_upload.add_argument(
        "--content-type",
        default=None,
        help="Content-Type for every chunk (default: inferred from the file name)",
    )
    parser_upload.add_argument(
        "-H",
        "--header",
        type=_parse_header,
        action="append",
        default=None,
        help="Extra request header, e.g. 'Authorization: Bearer abc' (repeatable)",
    )
    parser_upload.add_argument(
        "--watch-network",
        action="store_true",
        help="Pause while the network is unreachable and resume when it returns",
    )
    parser_upload.add_argument(
        "-d",
        "--debug",
        action="store_true",
        help="Show detailed debugging output (implies --verbose)",
    )
    parser_upload.set_defaults(func=cmd_upload)

    # 'plan' command
    parser_plan = subparsers.add_parser(
        "plan",
        help="Show how a file would be chunked (no network calls)",
        description="Print chunk ranges and Content-Range headers for a file.",
    )
    parser_plan.add_argument("file", help="Path to the file")
    _add_common_options(parser_plan)
    parser_plan.set_defaults(func=cmd_plan)

    return parser


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the upchunk CLI.

    This function is registered as the 'upchunk' console script in pyproject.toml.
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    exit_code = args.func(args)
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
