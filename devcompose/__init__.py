"""Dev Container feature composition library.

This package resolves devcontainer feature dependencies, discovers features
from cloned feature repositories and composes the resulting
devcontainer.json configuration.
"""

from __future__ import annotations

__version__ = "1.0.0"
