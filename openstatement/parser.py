import re
from typing import Dict, List, Optional, Type, Union

from openstatement.camt053 import Camt053Format
from openstatement.config import Settings, get_settings
from openstatement.csv_format import CSVFormat
from openstatement.logging_setup import get_logger
from openstatement.models import ComparisonResult, Transaction
from openstatement.mt940 import MT940Format
from openstatement.reconciler import Reconciler
from openstatement.translator import Translator

logger = get_logger(__name__)

StatementDocument = Union[MT940Format, Camt053Format, CSVFormat]

FORMATS: Dict[str, Type] = {
    "mt940": MT940Format,
    "camt053": Camt053Format,
    "csv": CSVFormat,
}

_MT940_MARKERS = re.compile(r"\}[{ ]*4:|\A\s*:[0-9]{2}[A-Z]?:|\A\s*\{1:|\A\s*\{4:")


def format_name(document: StatementDocument) -> str:
    for name, cls in FORMATS.items():
        if isinstance(document, cls):
            return name
    raise TypeError(f"Unsupported statement object: {type(document).__name__}")


class StatementParser:
    """
    Entry point turning raw statement bytes into a format object.

    The format is detected from the payload unless given explicitly:
    MT940 when a block 4 delimiter or a leading field tag is present,
    CAMT.053 when the payload starts with ``<``, CSV otherwise.
    """

    def __init__(self, data: bytes, fmt: Optional[str] = None, settings: Optional[Settings] = None):
        self.data = data
        self.settings = settings or get_settings()
        self.fmt = fmt.lower() if fmt else self.detect_format(data)
        if self.fmt not in FORMATS:
            raise ValueError(
                f"Unknown statement format '{fmt}'. Expected one of: {', '.join(FORMATS)}"
            )

    @staticmethod
    def detect_format(data: Union[bytes, str]) -> str:
        if isinstance(data, bytes):
            text = data[:4096].decode("utf-8", errors="ignore")
        else:
            text = data[:4096]
        text = text.lstrip("\ufeff")
        if text.lstrip().startswith("<"):
            return "camt053"
        if _MT940_MARKERS.search(text):
            return "mt940"
        return "csv"

    def parse(self) -> StatementDocument:
        logger.debug("Parsing %d bytes as %s", len(self.data), self.fmt)
        return FORMATS[self.fmt].from_bytes(self.data, self.settings)


def parse(data: bytes, fmt: Optional[str] = None, settings: Optional[Settings] = None) -> StatementDocument:
    """Parses `data`, detecting its format when `fmt` is None."""
    return StatementParser(data, fmt, settings).parse()


def serialize(document: StatementDocument) -> bytes:
    return document.to_bytes()


def convert(document: StatementDocument) -> StatementDocument:
    """MT940 becomes CAMT.053 and CAMT.053 becomes MT940; CSV has no counterpart."""
    if isinstance(document, MT940Format):
        return Translator.mt940_to_camt053(document)
    if isinstance(document, Camt053Format):
        return Translator.camt053_to_mt940(document)
    raise TypeError(f"No conversion available for {type(document).__name__}")


def extract_transactions(document: StatementDocument) -> List[Transaction]:
    return document.collect_transactions()


def compare(first, second) -> ComparisonResult:
    """Compares two statements, holders or transaction lists."""
    return Reconciler.compare(first, second)
