"""Module entrypoint for running Lessonloom as ``python -m lessonloom``."""

from __future__ import annotations

from lessonloom.cli import main


if __name__ == "__main__":
    main()
