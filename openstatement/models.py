from dataclasses import asdict, dataclass, field
import datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from openstatement.exceptions import UnknownValueFormat


class DebitOrCredit(Enum):
    """
    Direction of a balance or an entry.

    The member values are the MT940 wire codes. The two reversal codes are
    crossed on the wire: "RD" is read as a reversal of a credit and "RC" as a
    reversal of a debit.
    """

    DEBIT = "D"
    CREDIT = "C"
    REVERSE_DEBIT = "RC"
    REVERSE_CREDIT = "RD"

    @classmethod
    def from_code(cls, code: str) -> "DebitOrCredit":
        try:
            return cls(code)
        except ValueError:
            raise UnknownValueFormat(
                f'Unknown debit/credit code "{code}" for an MT940 operation'
            ) from None

    @classmethod
    def from_camt_code(cls, code: str) -> "DebitOrCredit":
        """CRDT maps to CREDIT, anything else (DBIT included) to DEBIT."""
        return cls.CREDIT if code == "CRDT" else cls.DEBIT

    @property
    def is_credit(self) -> bool:
        return self in (DebitOrCredit.CREDIT, DebitOrCredit.REVERSE_CREDIT)

    @property
    def is_reversal(self) -> bool:
        return self in (DebitOrCredit.REVERSE_DEBIT, DebitOrCredit.REVERSE_CREDIT)

    @property
    def camt_code(self) -> str:
        return "CRDT" if self.is_credit else "DBIT"


@dataclass
class AvailableBalance:
    """
    A balance snapshot: direction, booking date, ISO currency and exact amount.

    Attributes:
        debit_or_credit (DebitOrCredit): Sign of the balance, DEBIT by default.
        date (Optional[datetime.date]): Date of the snapshot, None when unknown.
        currency (str): 3-letter ISO 4217 code, empty when unknown.
        amount (Decimal): Absolute balance amount.
    """

    debit_or_credit: DebitOrCredit = DebitOrCredit.DEBIT
    date: Optional[datetime.date] = None
    currency: str = ""
    amount: Decimal = Decimal(0)

    def merge(self, other: "AvailableBalance") -> None:
        """
        Overwrites the fields of this balance with the non-default fields of `other`.

        Used to accumulate balance fields scattered across several XML tags:
        whatever has been observed so far wins unless the incoming value is absent.
        """
        if other.debit_or_credit != DebitOrCredit.DEBIT:
            self.debit_or_credit = other.debit_or_credit
        if other.date is not None:
            self.date = other.date
        if other.currency:
            self.currency = other.currency
        if other.amount != 0:
            self.amount = other.amount

    def to_available(self) -> "AvailableBalance":
        return AvailableBalance(
            debit_or_credit=self.debit_or_credit,
            date=self.date,
            currency=self.currency,
            amount=self.amount,
        )

    @property
    def signed_amount(self) -> Decimal:
        return self.amount if self.debit_or_credit.is_credit else -self.amount


@dataclass
class Balance(AvailableBalance):
    """Opening or closing balance of an MT940 statement (tags 60 and 62)."""

    is_intermediate: bool = False

    def merge(self, other: AvailableBalance) -> None:
        if getattr(other, "is_intermediate", False):
            self.is_intermediate = True
        super().merge(other)


@dataclass
class StatementLine:
    """
    One MT940 :61: entry together with the :86: narrative that follows it.

    Attributes:
        value_date (Optional[datetime.date]): Value date (YYMMDD on the wire).
        entry_date (Optional[datetime.date]): Booking date (MMDD on the wire, year of the value date).
        ext_debit_credit_indicator (DebitOrCredit): D, C, RD or RC.
        funds_code (Optional[str]): Third character of the currency code, rarely used.
        amount (Decimal): Absolute amount of the entry.
        transaction_type_ident_code (str): 3-character code following the literal N.
        customer_ref (str): Reference for the account owner.
        bank_ref (Optional[str]): Account servicing institution's reference.
        supplementary_details (Optional[str]): Trailing free text of the :61: field.
        information_to_account_owner (Optional[str]): The :86: narrative.
    """

    value_date: Optional[datetime.date] = None
    entry_date: Optional[datetime.date] = None
    ext_debit_credit_indicator: DebitOrCredit = DebitOrCredit.DEBIT
    funds_code: Optional[str] = None
    amount: Decimal = Decimal(0)
    transaction_type_ident_code: str = ""
    customer_ref: str = ""
    bank_ref: Optional[str] = None
    supplementary_details: Optional[str] = None
    information_to_account_owner: Optional[str] = None


@dataclass
class Message:
    """
    One MT940 statement, i.e. everything between a :20: field and the next one.
    """

    transaction_ref_no: str = ""
    ref_to_related_msg: Optional[str] = None
    account_id: str = ""
    statement_no: str = ""
    sequence_no: Optional[str] = None
    opening_balance: Balance = field(default_factory=Balance)
    statement_lines: List[StatementLine] = field(default_factory=list)
    closing_balance: Balance = field(default_factory=Balance)
    closing_available_balance: Optional[AvailableBalance] = None
    forward_available_balance: Optional[AvailableBalance] = None
    information_to_account_owner: Optional[str] = None

    def to_dict(self) -> dict:
        """
        Converts the message into a standard Python dictionary.
        Returns:
            dict: Nested dictionary of the message, its balances and its lines.
        """
        return asdict(self)


@dataclass(frozen=True)
class Transaction:
    """
    The minimal, format independent view of a single entry.

    Two transactions are equal when amount, currency, date and direction all match.
    """

    amount: Decimal = Decimal(0)
    currency: str = ""
    date: Optional[datetime.date] = None
    operation_type: DebitOrCredit = DebitOrCredit.DEBIT

    def __str__(self) -> str:
        text = f"{self.amount}"
        if self.currency:
            text += f" {self.currency}"
        return f"{text} on {self.date.isoformat() if self.date else 'unknown date'}"


@dataclass
class ComparisonResult:
    """
    Outcome of comparing two transaction sequences.

    Attributes:
        is_match (bool): True when both sequences are equivalent.
        side (Optional[str]): "first" or "second", the statement holding the
            unmatched or differing transaction.
        transaction (Optional[Transaction]): The transaction on `side`.
        other (Optional[Transaction]): The transaction it was compared with, if any.
        position (Optional[int]): Index in the date-sorted sequences.
    """

    is_match: bool
    side: Optional[str] = None
    transaction: Optional[Transaction] = None
    other: Optional[Transaction] = None
    position: Optional[int] = None

    def describe(self, first_name: str = "first", second_name: str = "second") -> str:
        if self.is_match:
            return "Transactions are identical"
        names = {"first": first_name, "second": second_name}
        here = names[self.side]
        there = names["second" if self.side == "first" else "first"]
        if self.other is None:
            return f"Transaction ({self.transaction}) is present in {here} but missing in {there}"
        return (
            f"Transaction ({self.transaction}) in {here} differs from "
            f"({self.other}) in {there} at position {self.position}"
        )


@dataclass
class ValidationReport:
    """
    Standardized report returning the analytical state of a validated statement.

    Attributes:
        is_valid (bool): True if no consistency errors were found.
        errors (List[str]): List of messages naming each rule that failed.
    """

    is_valid: bool
    errors: List[str]
