"""Dependency management utilities for the devcontainer feature composer.

This module checks for the third-party packages the command line needs and
installs them when they are missing.
"""

from __future__ import annotations

import importlib.util
import subprocess
import sys

REQUIRED_PACKAGES = [
    ("httpx", "httpx>=0.27.0"),
    ("rich", "rich>=13.0.0"),
    ("toml", "toml>=0.10.0"),
]


def find_missing_packages() -> list[str]:
    """Return the install specs of required packages that are not importable."""
    return [spec for module_name, spec in REQUIRED_PACKAGES if importlib.util.find_spec(module_name) is None]


def check_and_install_dependencies() -> None:
    """Check for required dependencies and install them if needed.

    Raises
    ------
    SystemExit
        If dependencies cannot be installed

    """
    missing_packages = find_missing_packages()
    if not missing_packages:
        return

    print("Installing required dependencies...")
    print(f"Missing packages: {', '.join(missing_packages)}")

    cmd = [sys.executable, "-m", "pip", "install", *missing_packages]
    try:
        subprocess.run(cmd, check=True, capture_output=True, text=True)
        print("Dependencies installed successfully!")
    except subprocess.CalledProcessError as e:
        print(f"Failed to install dependencies: {e}")
        print("Please install manually:")
        for package in missing_packages:
            print(f"  python -m pip install {package}")
        sys.exit(1)
