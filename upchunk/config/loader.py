"""
Configuration loading and merging for upchunk.

This module builds an UploadConfig from up to four layers, each one
overriding the previous:

Configuration Layers
--------------------
1. **Built-in defaults** (DEFAULTS below)
   - 5 MiB chunks, 5 retries per chunk, fixed 1 second backoff
   - Success codes 200/201/202/204/308, retryable codes 408/502/503/504

2. **YAML file** (optional, e.g. upchunk.yaml)
   - Same nested layout as DEFAULTS; any subset of keys

3. **Environment** (UPCHUNK_* variables, optionally from a .env file)
   - UPCHUNK_CHUNK_SIZE, UPCHUNK_CHUNK_SIZE_MB, UPCHUNK_MAX_RETRIES,
     UPCHUNK_RETRY_STRATEGY, UPCHUNK_RETRY_DELAY, UPCHUNK_AUTH_TOKEN

4. **Explicit overrides** (a dict passed by the caller, e.g. CLI flags)

Merge Behavior
--------------
  - **Dicts**: Recursively merged (keys from overlay override base)
  - **Lists**: Completely replaced (NOT appended/extended)
  - **Scalars**: Overwritten

Chunk size may be written in bytes (`upload.chunk_size`) or in mebibytes
(`upload.chunk_size_mb`); within one layer the mebibyte form wins.

Example YAML
------------
    upload:
      chunk_size_mb: 8
      max_retries: 3
    retry:
      strategy: exponential
      min_delay: 2
      max_delay: 10
    http:
      read_timeout: 30
      headers:
        X-Upload-Token: abc123

Error Handling
--------------
- ConfigError: missing explicit file, YAML parse errors, non-mapping
  documents, invalid values. All errors are chained with "from err".
"""

from __future__ import annotations

from collections.abc import Mapping
import copy
from dataclasses import dataclass, field
import os
from pathlib import Path
from typing import Any

from dotenv import load_dotenv
import yaml

from upchunk.chunking import DEFAULT_CHUNK_SIZE
from upchunk.classify import (
    DEFAULT_RETRYABLE_CODES,
    DEFAULT_SUCCESS_CODES,
    ResponseClassifier,
)
from upchunk.exceptions import ConfigError
from upchunk.io.files import DEFAULT_CONTENT_TYPE
from upchunk.io.transport import DEFAULT_CONNECT_TIMEOUT, DEFAULT_READ_TIMEOUT
from upchunk.logging import get_global_logger
from upchunk.retry import (
    DEFAULT_DELAY,
    DEFAULT_MAX_DELAY,
    DEFAULT_MAX_RETRIES,
    DEFAULT_MIN_DELAY,
    STRATEGIES,
    RetryPolicy,
)

MIB = 1024 * 1024

DEFAULTS: dict[str, Any] = {
    "upload": {
        "chunk_size": DEFAULT_CHUNK_SIZE,
        "max_retries": DEFAULT_MAX_RETRIES,
        "content_type": DEFAULT_CONTENT_TYPE,
    },
    "retry": {
        "strategy": "fixed",
        "delay": DEFAULT_DELAY,
        "min_delay": DEFAULT_MIN_DELAY,
        "max_delay": DEFAULT_MAX_DELAY,
    },
    "status_codes": {
        "success": sorted(DEFAULT_SUCCESS_CODES),
        "retryable": sorted(DEFAULT_RETRYABLE_CODES),
    },
    "http": {
        "connect_timeout": DEFAULT_CONNECT_TIMEOUT,
        "read_timeout": DEFAULT_READ_TIMEOUT,
        "headers": {},
    },
    "connectivity": {
        "check_url": "https://one.one.one.one",
        "interval": 10.0,
        "timeout": 5.0,
    },
}

# -------------------------------
# Data types
# -------------------------------


@dataclass(frozen=True)
class RetrySettings:
    strategy: str = "fixed"
    delay: float = DEFAULT_DELAY
    min_delay: float = DEFAULT_MIN_DELAY
    max_delay: float = DEFAULT_MAX_DELAY


@dataclass(frozen=True)
class ConnectivitySettings:
    """Where and how often PollingConnectivityMonitor probes the network."""

    check_url: str = "https://one.one.one.one"
    interval: float = 10.0
    timeout: float = 5.0


@dataclass(frozen=True)
class UploadConfig:
    """Effective settings for an upload session.

    Attributes:
        chunk_size: Target chunk size in bytes.
        max_retries: Retry budget per chunk.
        default_content_type: Content-Type used when inference fails.
        retry: Backoff strategy and delays.
        success_codes: Status codes that confirm a chunk.
        retryable_codes: Status codes treated as transient.
        connect_timeout: Socket connect timeout (seconds).
        read_timeout: Socket read timeout (seconds).
        headers: Extra headers sent with every chunk.
        connectivity: Network probe settings.
    """

    chunk_size: int = DEFAULT_CHUNK_SIZE
    max_retries: int = DEFAULT_MAX_RETRIES
    default_content_type: str = DEFAULT_CONTENT_TYPE
    retry: RetrySettings = field(default_factory=RetrySettings)
    success_codes: tuple[int, ...] = tuple(sorted(DEFAULT_SUCCESS_CODES))
    retryable_codes: tuple[int, ...] = tuple(sorted(DEFAULT_RETRYABLE_CODES))
    connect_timeout: float = DEFAULT_CONNECT_TIMEOUT
    read_timeout: float = DEFAULT_READ_TIMEOUT
    headers: dict[str, str] = field(default_factory=dict)
    connectivity: ConnectivitySettings = field(default_factory=ConnectivitySettings)

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_retries=self.max_retries,
            strategy=self.retry.strategy,
            delay=self.retry.delay,
            min_delay=self.retry.min_delay,
            max_delay=self.retry.max_delay,
        )

    def classifier(self) -> ResponseClassifier:
        return ResponseClassifier(self.success_codes, self.retryable_codes)


# -------------------------------
# YAML helpers
# -------------------------------


def _load_yaml_file(p: Path) -> dict[str, Any]:
    """
    Load a YAML config file and return the parsed mapping.

    An empty file is treated as an empty mapping (nothing overridden).

    Raises:
      ConfigError - missing file, invalid YAML, or a non-mapping document
    """
    if not p.exists():
        raise ConfigError(f"config file not found: {p}")
    try:
        with p.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as err:
        raise ConfigError(f"Error parsing YAML: {p}: {err}") from err
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"top-level YAML must be a mapping (dict): {p}")
    return data


# -------------------------------
# Merge logic
# -------------------------------


def _deep_merge_dicts(base: dict[str, Any], overlay: Mapping[str, Any]) -> dict[str, Any]:
    """
    Deep-merge two dicts with "overlay wins".

    Rules:
      - dict + dict -> deep merge
      - list + list -> overlay REPLACES base (not concatenated)
      - everything else -> overlay overwrites base

    This function does not mutate inputs; returns a new dict.
    """
    result: dict[str, Any] = dict(base)
    for k, v in overlay.items():
        if k in result and isinstance(result[k], dict) and isinstance(v, Mapping):
            result[k] = _deep_merge_dicts(result[k], v)
        else:
            result[k] = v
    return result


def _normalize_layer(layer: Mapping[str, Any], source: str) -> dict[str, Any]:
    """Convert upload.chunk_size_mb into upload.chunk_size for one layer."""
    out = copy.deepcopy(dict(layer))
    upload = out.get("upload")
    if upload is None:
        return out
    if not isinstance(upload, dict):
        raise ConfigError(f"{source}: 'upload' must be a mapping")
    if "chunk_size_mb" in upload:
        mb = upload.pop("chunk_size_mb")
        try:
            upload["chunk_size"] = int(float(mb) * MIB)
        except (TypeError, ValueError) as err:
            raise ConfigError(
                f"{source}: upload.chunk_size_mb must be a number, got {mb!r}"
            ) from err
    return out


# -------------------------------
# Environment
# -------------------------------


def _env_layer(environ: Mapping[str, str]) -> dict[str, Any]:
    """Translate UPCHUNK_* variables into a config layer."""
    layer: dict[str, Any] = {}

    def put(section: str, key: str, value: Any) -> None:
        layer.setdefault(section, {})[key] = value

    if "UPCHUNK_CHUNK_SIZE" in environ:
        put("upload", "chunk_size", environ["UPCHUNK_CHUNK_SIZE"])
    if "UPCHUNK_CHUNK_SIZE_MB" in environ:
        put("upload", "chunk_size_mb", environ["UPCHUNK_CHUNK_SIZE_MB"])
    if "UPCHUNK_MAX_RETRIES" in environ:
        put("upload", "max_retries", environ["UPCHUNK_MAX_RETRIES"])
    if "UPCHUNK_RETRY_STRATEGY" in environ:
        put("retry", "strategy", environ["UPCHUNK_RETRY_STRATEGY"])
    if "UPCHUNK_RETRY_DELAY" in environ:
        put("retry", "delay", environ["UPCHUNK_RETRY_DELAY"])
    token = environ.get("UPCHUNK_AUTH_TOKEN")
    if token:
        put("http", "headers", {"Authorization": f"Bearer {token}"})
    return layer


# -------------------------------
# Validation
# -------------------------------


def _as_int(value: Any, name: str, *, minimum: int) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError) as err:
        raise ConfigError(f"{name} must be an integer, got {value!r}") from err
    if isinstance(value, float) and value != number:
        raise ConfigError(f"{name} must be an integer, got {value!r}")
    if number < minimum:
        raise ConfigError(f"{name} must be >= {minimum}, got {number}")
    return number


def _as_float(value: Any, name: str) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError) as err:
        raise ConfigError(f"{name} must be a number, got {value!r}") from err
    if number < 0:
        raise ConfigError(f"{name} must be >= 0, got {number}")
    return number


def _as_codes(value: Any, name: str) -> tuple[int, ...]:
    if not isinstance(value, list):
        raise ConfigError(f"{name} must be a list of status codes")
    return tuple(_as_int(v, name, minimum=100) for v in value)


def _build_config(cfg: dict[str, Any]) -> UploadConfig:
    upload = cfg["upload"]
    retry = cfg["retry"]
    codes = cfg["status_codes"]
    http = cfg["http"]
    conn = cfg["connectivity"]

    strategy = str(retry["strategy"]).lower()
    if strategy not in STRATEGIES:
        raise ConfigError(
            f"unknown retry strategy {retry['strategy']!r}; "
            f"expected one of: {', '.join(STRATEGIES)}"
        )
    retry_settings = RetrySettings(
        strategy=strategy,
        delay=_as_float(retry["delay"], "retry.delay"),
        min_delay=_as_float(retry["min_delay"], "retry.min_delay"),
        max_delay=_as_float(retry["max_delay"], "retry.max_delay"),
    )
    if retry_settings.max_delay < retry_settings.min_delay:
        raise ConfigError("retry.max_delay must be >= retry.min_delay")

    success = _as_codes(codes["success"], "status_codes.success")
    retryable = _as_codes(codes["retryable"], "status_codes.retryable")
    overlap = set(success) & set(retryable)
    if overlap:
        raise ConfigError(
            f"status codes cannot be both success and retryable: {sorted(overlap)}"
        )

    headers = http.get("headers") or {}
    if not isinstance(headers, dict):
        raise ConfigError("http.headers must be a mapping")

    check_url = conn.get("check_url")
    return UploadConfig(
        chunk_size=_as_int(upload["chunk_size"], "upload.chunk_size", minimum=1),
        max_retries=_as_int(upload["max_retries"], "upload.max_retries", minimum=0),
        default_content_type=str(upload["content_type"]),
        retry=retry_settings,
        success_codes=success,
        retryable_codes=retryable,
        connect_timeout=_as_float(http["connect_timeout"], "http.connect_timeout"),
        read_timeout=_as_float(http["read_timeout"], "http.read_timeout"),
        headers={str(k): str(v) for k, v in headers.items()},
        connectivity=ConnectivitySettings(
            check_url=str(check_url) if check_url else "",
            interval=_as_float(conn["interval"], "connectivity.interval"),
            timeout=_as_float(conn["timeout"], "connectivity.timeout"),
        ),
    )


# -------------------------------
# Public API
# -------------------------------


def load_config(
    path: Path | None = None,
    *,
    overrides: Mapping[str, Any] | None = None,
    environ: Mapping[str, str] | None = None,
    use_dotenv: bool = True,
) -> UploadConfig:
    """
    Load the effective upload configuration.

    Steps
      1) Start from DEFAULTS.
      2) Merge the YAML file at 'path', if given.
      3) Load .env (unless use_dotenv is False) and merge UPCHUNK_* variables.
      4) Merge explicit overrides.
      5) Validate and build an UploadConfig.

    Args:
        path: Optional YAML file. Must exist when given.
        overrides: Nested dict applied last (same layout as DEFAULTS).
        environ: Environment mapping; defaults to os.environ.
        use_dotenv: Whether to read ./.env into the environment first.

    Returns:
        A validated, immutable UploadConfig.

    Raises:
        ConfigError: On missing files, YAML errors or invalid values.
    """
    logger = get_global_logger()

    merged = copy.deepcopy(DEFAULTS)
    layers = 1

    if path is not None:
        path = Path(path)
        logger.verbose("CONFIG", f"Loading: {path}")
        merged = _deep_merge_dicts(
            merged, _normalize_layer(_load_yaml_file(path), str(path))
        )
        layers += 1

    if environ is None:
        if use_dotenv:
            load_dotenv(Path.cwd() / ".env")
        environ = os.environ
    env_layer = _env_layer(environ)
    if env_layer:
        logger.verbose(
            "CONFIG", f"Applying environment overrides: {', '.join(sorted(env_layer))}"
        )
        merged = _deep_merge_dicts(merged, _normalize_layer(env_layer, "environment"))
        layers += 1

    if overrides:
        merged = _deep_merge_dicts(merged, _normalize_layer(overrides, "overrides"))
        layers += 1

    logger.debug("CONFIG", f"Deep merged {layers} layer(s)")
    for section in ("upload", "retry", "status_codes", "http", "connectivity"):
        if not isinstance(merged.get(section), dict):
            raise ConfigError(f"'{section}' must be a mapping")

    config = _build_config(merged)
    logger.verbose(
        "CONFIG",
        f"chunk_size={config.chunk_size} max_retries={config.max_retries} "
        f"retry={config.retry.strategy}",
    )
    return config
