from __future__ import annotations

from quant_prep.app import run


def main() -> int:
    """Entry point for running the trainer from the command line."""
    return run()


if __name__ == "__main__":
    raise SystemExit(main())
