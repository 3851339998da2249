import argparse
import sys
from typing import List, Optional

import structlog

from codec import decode_transactions, encode_report
from config import Settings, get_settings
from errors import EngineError, ReadingError
from logging_config import configure_logging
from models import ProcessingSummary
from repositories import create_ledger_repository
from services import TransactionService, get_transaction_service

logger = structlog.get_logger()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ledger-engine",
        description="Apply a CSV stream of transactions and print final account balances."
    )
    parser.add_argument("input", help="Path to the transactions CSV file")
    return parser


def process_file(path: str, service: TransactionService, settings: Settings) -> ProcessingSummary:
    try:
        with open(path, newline="", encoding="utf-8") as source:
            return service.process(decode_transactions(source, settings))
    except OSError as e:
        raise ReadingError(path, e.strerror or str(e))


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    settings = get_settings()
    configure_logging(settings)

    service = get_transaction_service(create_ledger_repository())
    try:
        process_file(args.input, service, settings)
    except EngineError as e:
        logger.error("Fatal error, no report produced", error=str(e), error_code=e.error_code)
        return 1

    encode_report(service.report(), sys.stdout)
    return 0


if __name__ == "__main__":
    sys.exit(main())
