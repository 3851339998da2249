import csv
from typing import Iterable, Iterator, List, TextIO

from pydantic import ValidationError

from config import Settings
from errors import ParsingError, ReadingError
from models import OperationType, ReportRow, Transaction, TransactionInput
from money import format_amount, truncate

INPUT_COLUMNS = ("type", "client", "tx", "amount")
REQUIRED_COLUMNS = ("type", "client", "tx")
REPORT_HEADER = ("client", "available", "held", "total", "locked")


def _parse_operation(raw: str, line: int, case_insensitive: bool) -> OperationType:
    value = raw.lower() if case_insensitive else raw
    try:
        return OperationType(value)
    except ValueError:
        raise ParsingError(line, f"unknown transaction type {raw!r}")


def _read_header(reader) -> List[str]:
    header = next(reader, None)
    if header is None:
        raise ParsingError(1, "missing header")

    columns = [name.strip().lower() for name in header]
    missing = [name for name in REQUIRED_COLUMNS if name not in columns]
    if missing:
        raise ParsingError(reader.line_num, f"header lacks column(s): {', '.join(missing)}")
    return columns


def decode_transactions(stream: TextIO, settings: Settings) -> Iterator[Transaction]:
    """Yield typed records from a CSV stream, in file order."""
    reader = csv.reader(stream)
    try:
        columns = _read_header(reader)

        for row in reader:
            # blank line
            if not row or all(not field.strip() for field in row):
                continue

            line = reader.line_num
            if len(row) > len(columns):
                raise ParsingError(line, f"expected at most {len(columns)} fields, got {len(row)}")

            fields = {
                name: (value.strip() or None)
                for name, value in zip(columns, row)
                if name in INPUT_COLUMNS
            }
            try:
                raw = TransactionInput(**fields)
            except ValidationError as e:
                raise ParsingError(line, "; ".join(err["msg"] for err in e.errors()))

            amount = raw.amount
            if amount is not None:
                amount = truncate(amount, settings.amount_scale)

            yield Transaction(
                id=raw.tx,
                client_id=raw.client,
                operation=_parse_operation(raw.type, line, settings.case_insensitive_operations),
                amount=amount,
            )
    except csv.Error as e:
        raise ParsingError(reader.line_num, str(e))
    except UnicodeDecodeError as e:
        raise ParsingError(reader.line_num + 1, f"input is not valid UTF-8 ({e.reason})")
    except OSError as e:
        raise ReadingError(getattr(stream, "name", "<stream>"), str(e))


def encode_report(rows: Iterable[ReportRow], stream: TextIO) -> None:
    writer = csv.writer(stream, lineterminator="\n")
    writer.writerow(REPORT_HEADER)
    for row in rows:
        writer.writerow([
            row.client,
            format_amount(row.available),
            format_amount(row.held),
            format_amount(row.total),
            "true" if row.locked else "false",
        ])
