"""Module entrypoint for ``python -m brickline``."""

from __future__ import annotations

from brickline.main import cli_entrypoint

if __name__ == "__main__":
    raise SystemExit(cli_entrypoint())
