from __future__ import annotations

from card_elo.cli import main


if __name__ == "__main__":
    raise SystemExit(main())
