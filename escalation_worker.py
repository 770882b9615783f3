import argparse
import logging
import os
import time

from app.core.config import settings
from app.database import session_scope
from app.services.escalation import run_due_escalations


logger = logging.getLogger(__name__)


def run_cycle() -> dict:
    with session_scope() as db:
        return run_due_escalations(db)


def run_forever() -> None:
    poll_seconds = int(os.getenv("ESCALATION_POLL_SECONDS", str(settings.ESCALATION_POLL_SECONDS)))
    logger.info("Escalation worker started, polling every %ss", poll_seconds)

    try:
        while True:
            try:
                result = run_cycle()
                if result["processed"] or result["reclaimed"]:
                    logger.info(
                        "Escalation cycle: processed=%s reclaimed=%s",
                        result["processed"],
                        result["reclaimed"],
                    )
            except Exception:
                logging.exception("Escalation worker cycle failed.")
            time.sleep(poll_seconds)
    except KeyboardInterrupt:
        logger.warning("Escalation worker shutting down.")


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Run due parcel notification escalations.")
    parser.add_argument("--once", action="store_true", help="run a single cycle and exit")
    args = parser.parse_args(argv)

    if args.once:
        result = run_cycle()
        logger.info("Escalation cycle: processed=%s reclaimed=%s", result["processed"], result["reclaimed"])
        return
    run_forever()


if __name__ == "__main__":
    log_level = os.getenv("ESCALATION_LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(message)s",
    )
    main()
