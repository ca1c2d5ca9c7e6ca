"""
OpenStatement: parse, convert and reconcile bank account statements in
SWIFT MT940, ISO 20022 CAMT.053 and bank-export CSV formats.
"""

from .camt053 import Camt053Format
from .csv_format import CSVFormat
from .exceptions import (
    DataFormatError,
    FormatError,
    ReadWriteError,
    UnknownError,
    UnknownValueFormat,
    UnsupportedTag,
)
from .models import (
    AvailableBalance,
    Balance,
    ComparisonResult,
    DebitOrCredit,
    Message,
    StatementLine,
    Transaction,
)
from .mt940 import MT940Format
from .parser import StatementParser, compare, convert, extract_transactions, parse, serialize
from .reconciler import Reconciler, TransactionHolder
from .tag_tree import Tag, TagIterator, TagTree
from .translator import Translator
from .validator import Validator

__all__ = [
    "StatementParser",
    "parse",
    "serialize",
    "convert",
    "extract_transactions",
    "compare",
    "Camt053Format",
    "MT940Format",
    "CSVFormat",
    "Tag",
    "TagTree",
    "TagIterator",
    "Translator",
    "Reconciler",
    "TransactionHolder",
    "Validator",
    "AvailableBalance",
    "Balance",
    "StatementLine",
    "Message",
    "Transaction",
    "DebitOrCredit",
    "ComparisonResult",
    "FormatError",
    "DataFormatError",
    "UnknownValueFormat",
    "UnsupportedTag",
    "ReadWriteError",
    "UnknownError",
]
