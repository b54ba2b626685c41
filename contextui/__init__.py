"""Public package surface for contextui.

Only ``main`` is exported here; importing the package does not pull in
Pillow, pygments or watchfiles until the CLI actually runs.
"""

from __future__ import annotations


def main(*args, **kwargs):
    """Lazily import CLI entrypoint to keep package imports lightweight."""
    from .cli import main as _main

    return _main(*args, **kwargs)

__all__ = ["main"]
