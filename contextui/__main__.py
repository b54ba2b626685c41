"""Module entrypoint for ``python -m contextui``.

All argument parsing and runtime setup happen in ``contextui.cli``.
"""

from .cli import main


if __name__ == "__main__":
    main()
