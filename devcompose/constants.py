"""Constants used throughout the devcontainer feature composer."""

from __future__ import annotations

import os

# Global debug flag - can be set via environment variable or command line
DEBUG_MODE = os.getenv("DEBUG", "false").lower() in ("true", "1", "yes", "on")

# Parallel processing configuration
DEFAULT_WORKER_COUNT = 8  # Optimal for I/O-bound manifest fetches
DEFAULT_LOOKUP_TIMEOUT = 30.0  # Seconds allowed for a single manifest lookup

# Feature reference constants
DEFAULT_REGISTRY = "ghcr.io"
FEATURES_NAMESPACE = "features"
LATEST_TAG = "latest"
LOCAL_FEATURE_PREFIXES = ("./features/", "./")

# Feature repositories
DEFAULT_ACCOUNTS = ["devcontainers", "blackwd-bwh"]
DEFAULT_BRANCH = "main"
FEATURE_REPOSITORY_URL = "https://github.com/{account}/features.git"
RAW_MANIFEST_URL = "https://raw.githubusercontent.com/{account}/features/{branch}/src/{name}/devcontainer-feature.json"
FEATURE_SOURCE_DIR = "src"
MANIFEST_FILENAME = "devcontainer-feature.json"

# Generated project layout
DEFAULT_IMAGE = "mcr.microsoft.com/devcontainers/base:ubuntu"
DEVCONTAINER_DIR = ".devcontainer"
DEVCONTAINER_FILENAME = "devcontainer.json"

# Configuration file
CONFIG_SECTION = "devcompose"
ENV_PREFIX = "DEVCOMPOSE_"
