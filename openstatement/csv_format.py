import csv
import io
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import BinaryIO, List, Optional, Union

from openstatement.config import Settings, get_settings
from openstatement.exceptions import ErrorFactory
from openstatement.logging_setup import get_logger
from openstatement.models import DebitOrCredit, Transaction

logger = get_logger(__name__)

Row = List[str]


class State(Enum):
    BEFORE = "before"
    HEADER = "header"
    DATA = "data"
    AFTER = "after"


def _is_header_like(cells: Row) -> bool:
    return not any(ch.isdigit() for cell in cells for ch in cell)


def _parse_date(text: str) -> Optional[date]:
    for fmt in ("%d.%m.%Y", "%Y-%m-%d"):
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    return None


def _parse_amount(text: str) -> Optional[Decimal]:
    try:
        return Decimal(text.replace(" ", "").replace("\u00a0", "").replace(",", "."))
    except InvalidOperation:
        return None


class CSVFormat:
    """
    A bank CSV export: a transaction table embedded between free-form rows.

    Attributes:
        columns (List[str]): Table headers, joined across wrapped header rows.
        table (List[List[str]]): Data rows restricted to the header span.
        other_before (List[List[str]]): Rows preceding the header.
        other_after (List[List[str]]): Rows following the table, starting with
            the blank row that ended it.
    """

    _errors = ErrorFactory("CSV table parse error")

    def __init__(
        self,
        columns: Optional[Row] = None,
        table: Optional[List[Row]] = None,
        other_before: Optional[List[Row]] = None,
        other_after: Optional[List[Row]] = None,
        settings: Optional[Settings] = None,
    ):
        self.columns: Row = columns if columns is not None else []
        self.table: List[Row] = table if table is not None else []
        self.other_before: List[Row] = other_before if other_before is not None else []
        self.other_after: List[Row] = other_after if other_after is not None else []
        self.settings = settings or get_settings()

    @classmethod
    def from_bytes(cls, data: Union[bytes, str], settings: Optional[Settings] = None) -> "CSVFormat":
        settings = settings or get_settings()
        if isinstance(data, bytes):
            try:
                data = data.decode(settings.csv_encoding)
            except UnicodeDecodeError as e:
                raise cls._errors.read_write(f"failed to decode CSV data: {e}") from e
        try:
            records = [[cell.strip() for cell in row] for row in csv.reader(io.StringIO(data))]
        except csv.Error as e:
            raise cls._errors.read_write(f"failed to read CSV records: {e}") from e
        return cls._from_records(records, settings)

    @classmethod
    def from_read(cls, stream: BinaryIO, settings: Optional[Settings] = None) -> "CSVFormat":
        try:
            data = stream.read()
        except OSError as e:
            raise cls._errors.read_write(f"failed to read the CSV stream: {e}") from e
        return cls.from_bytes(data, settings)

    @classmethod
    def _from_records(cls, records: List[Row], settings: Settings) -> "CSVFormat":
        anchor = settings.csv_posting_date_label
        document = cls(settings=settings)
        state = State.BEFORE
        first = last = 0

        def span(cells: Row) -> Row:
            cut = cells[first:last]
            return cut + [""] * (last - first - len(cut))

        for cells in records:
            if state is State.BEFORE:
                filled = [i for i, cell in enumerate(cells) if cell]
                if anchor in cells and filled:
                    first, last = filled[0], filled[-1] + 1
                    document.columns = cells[first:last]
                    state = State.HEADER
                else:
                    document.other_before.append(cells)
            elif state is State.HEADER:
                row = span(cells)
                if _is_header_like(row):
                    for index, cell in enumerate(row):
                        if cell:
                            joined = document.columns[index]
                            document.columns[index] = f"{joined} {cell}" if joined else cell
                else:
                    document.table.append(row)
                    state = State.DATA
            elif state is State.DATA:
                if all(not cell for cell in cells):
                    document.other_after.append(cells)
                    state = State.AFTER
                else:
                    document.table.append(span(cells))
            else:
                document.other_after.append(cells)

        if not document.columns or not document.table:
            raise cls._errors.data_format(
                f"no table found: header '{anchor}' is missing or the table is empty"
            )
        logger.debug(
            "Parsed CSV table with %d columns and %d rows", len(document.columns), len(document.table)
        )
        return document

    def to_bytes(self) -> bytes:
        buffer = io.StringIO()
        writer = csv.writer(buffer, lineterminator="\n")
        try:
            writer.writerows(self.other_before)
            writer.writerow(self.columns)
            writer.writerows(self.table)
            writer.writerows(self.other_after)
        except csv.Error as e:
            raise self._errors.read_write(f"failed to write CSV records: {e}") from e
        return buffer.getvalue().encode(self.settings.csv_encoding)

    def write_to(self, stream: BinaryIO) -> None:
        data = self.to_bytes()
        try:
            stream.write(data)
        except OSError as e:
            raise self._errors.read_write(f"failed to write the CSV stream: {e}") from e

    def collect_transactions(self) -> List[Transaction]:
        labels = (
            self.settings.csv_posting_date_label,
            self.settings.csv_debit_label,
            self.settings.csv_credit_label,
        )
        missing = [label for label in labels if label not in self.columns]
        if missing:
            logger.warning("CSV table has no column(s) %s, no transactions collected", missing)
            return []
        date_col, debit_col, credit_col = (self.columns.index(label) for label in labels)

        transactions = []
        for row in self.table:
            posting_date = _parse_date(row[date_col])
            if posting_date is None:
                logger.warning("Skipping unreadable posting date '%s'", row[date_col])
            if not row[debit_col]:
                operation, cell = DebitOrCredit.CREDIT, row[credit_col]
            else:
                operation, cell = DebitOrCredit.DEBIT, row[debit_col]
            amount = _parse_amount(cell)
            if amount is None:
                logger.warning("Skipping unreadable amount '%s'", cell)
                amount = Decimal(0)
            transactions.append(
                Transaction(amount=amount, date=posting_date, operation_type=operation)
            )
        logger.debug("Collected %d CSV transactions", len(transactions))
        return transactions
