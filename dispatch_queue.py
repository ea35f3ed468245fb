"""Console utility that runs one dispatch pass per owner with eligible sync items."""
from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import Dict, Optional

from core.settings import LOGS_DIR, SYNC
from services.dispatcher import DispatchSummary
from services.sync_service import SyncService
from storage.db import get_engine, init_db, session_factory_for


LOG_PATH = LOGS_DIR / "dispatch.log"


def dispatch_queue(
    *,
    owner_id: Optional[int] = None,
    batch_limit: Optional[int] = None,
    service: Optional[SyncService] = None,
) -> Dict[int, DispatchSummary]:
    """Replay eligible items for one owner, or for every owner when none is given."""

    if service is None:
        engine = init_db(get_engine())
        service = SyncService.build(session_factory_for(engine))

    if owner_id is not None:
        results = {owner_id: service.dispatcher.dispatch(owner_id, batch_limit)}
    else:
        results = service.dispatcher.dispatch_all(batch_limit)

    for owner, summary in results.items():
        logging.info(
            "Owner %s: processed=%d successful=%d failed=%d",
            owner,
            summary.processed,
            summary.successful,
            summary.failed,
        )
    return results


def _setup_logging(log_path: Path) -> None:
    log_path.parent.mkdir(parents=True, exist_ok=True)
    logging.basicConfig(
        filename=str(log_path),
        filemode="a",
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
    )


def _positive_int(raw: str) -> int:
    try:
        value = int(raw)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid int value: {raw!r}") from None
    if value < 1:
        raise argparse.ArgumentTypeError("must be at least 1")
    return value


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__ or "")
    parser.add_argument("--owner", type=int, default=None, help="Only dispatch for this owner id")
    parser.add_argument(
        "--batch-limit",
        type=_positive_int,
        default=SYNC.batch_limit,
        help="Maximum items replayed per owner (default: %(default)s)",
    )
    parser.add_argument(
        "--log",
        type=Path,
        default=LOG_PATH,
        help="Path to a log file (default: %(default)s)",
    )
    args = parser.parse_args()

    _setup_logging(args.log)
    try:
        results = dispatch_queue(owner_id=args.owner, batch_limit=args.batch_limit)
    except Exception as exc:  # pragma: no cover - defensive
        logging.exception("Dispatch failed: %s", exc)
        raise

    total = sum(summary.processed for summary in results.values())
    print(f"Dispatch complete: {total} items processed across {len(results)} owner(s).")


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    main()
