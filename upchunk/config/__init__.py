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

"""Configuration loading for upchunk.

Settings are layered: built-in defaults, an optional YAML file, UPCHUNK_*
environment variables (optionally read from .env), then explicit
overrides. Dicts are merged recursively; lists and scalars are replaced.

Public API:

- load_config: Build the effective UploadConfig
- UploadConfig: Immutable settings consumed by UploadSession.from_config

Example:
    Basic usage:

        from pathlib import Path
        from upchunk.config import load_config

        config = load_config(Path("upchunk.yaml"))
        print(config.chunk_size, config.retry.strategy)

"""

from .loader import (
    ConnectivitySettings,
    RetrySettings,
    UploadConfig,
    load_config,
)

__all__ = ["load_config", "UploadConfig", "RetrySettings", "ConnectivitySettings"]
