"""Entry point for `python -m kubenotify`.

Usage:
    python -m kubenotify
    uv run python -m kubenotify
"""

from __future__ import annotations

from kubenotify.app import run

run()
