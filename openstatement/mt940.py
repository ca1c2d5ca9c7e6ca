import re
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import BinaryIO, Iterator, List, Optional, Union

from openstatement.config import Settings, get_settings
from openstatement.exceptions import ErrorFactory, UnknownValueFormat
from openstatement.logging_setup import get_logger
from openstatement.models import (
    AvailableBalance,
    Balance,
    DebitOrCredit,
    Message,
    StatementLine,
    Transaction,
)

logger = get_logger(__name__)

# Written in place of a missing date.
DEFAULT_DATE = date(1970, 1, 1)


def format_amount(amount: Decimal) -> str:
    """SWIFT amount: comma as decimal separator, always with fraction digits."""
    text = format(amount, "f")
    if "." not in text:
        text += ".00"
    return text.replace(".", ",")


class MT940Format:
    """
    An MT940 document: the parsed messages plus the envelope text around them.

    `other_data[i]` is the text written before message `i` (block 1-3 headers,
    the tail of the previous envelope), and any entry past the last message is
    written after it. Parsing a block holding several messages pads the list
    with empty strings so that the indices stay aligned.
    """

    _errors = ErrorFactory("MT940 parse error")

    # A ``}`` closing the previous block then ``{4:``, or ``{4:`` opening a line.
    _BLOCK_START = re.compile(r"(\}|^(?=\{4:))[{ ]*4:")
    _BLOCK_END = re.compile(r"-[)}]|\}")
    _FIELD = re.compile(r"^:([0-9]{2}[A-Z]?):", re.MULTILINE)
    _BARE_BLOCK = re.compile(r"\A\s*:[0-9]{2}[A-Z]?:")
    _AMOUNT = re.compile(r"[0-9]+[,.][0-9]+")
    _HANDLED_TAGS = frozenset(
        ["21", "25", "28", "28C", "60F", "60M", "61", "86", "62F", "62M", "64", "65"]
    )

    def __init__(
        self,
        messages: Optional[List[Message]] = None,
        other_data: Optional[List[str]] = None,
        settings: Optional[Settings] = None,
    ):
        self.messages: List[Message] = messages if messages is not None else []
        self.other_data: List[str] = other_data if other_data is not None else []
        self.settings = settings or get_settings()

    def __iter__(self) -> Iterator[Message]:
        return iter(self.messages)

    def __len__(self) -> int:
        return len(self.messages)

    @classmethod
    def from_bytes(cls, data: Union[bytes, str], settings: Optional[Settings] = None) -> "MT940Format":
        settings = settings or get_settings()
        if isinstance(data, bytes):
            try:
                data = data.decode(settings.mt940_encoding)
            except UnicodeDecodeError as e:
                raise cls._errors.read_write(f"failed to decode MT940 text: {e}") from e
        document = cls(settings=settings)
        document._scan(data.replace("\r\n", "\n"))
        return document

    @classmethod
    def from_read(cls, stream: BinaryIO, settings: Optional[Settings] = None) -> "MT940Format":
        try:
            data = stream.read()
        except OSError as e:
            raise cls._errors.read_write(f"failed to read the MT940 stream: {e}") from e
        return cls.from_bytes(data, settings)

    def _scan(self, text: str) -> None:
        """Splits `text` into envelope segments and block 4 payloads."""
        segment: List[str] = []
        leading = ""
        payload: Optional[List[str]] = None

        for line in text.split("\n"):
            rest = line
            while True:
                if payload is None:
                    m = self._BLOCK_START.search(rest)
                    if m is None:
                        segment.append(rest)
                        break
                    segment.append(rest[: m.end(1)])
                    leading = "\n".join(segment)
                    segment = []
                    payload = []
                    rest = rest[m.end():]
                else:
                    m = self._BLOCK_END.search(rest)
                    if m is None:
                        payload.append(rest)
                        break
                    payload.append(rest[: m.start()])
                    self._add_block(leading, "\n".join(payload))
                    payload = None
                    rest = rest[m.end():]

        if payload is not None:
            raise self._errors.data_format("block 4 is never closed")

        if not self.messages:
            if self._BARE_BLOCK.match(text):
                self.messages = self.parse_block4(text)
                self.other_data = []
                logger.debug("Parsed bare block 4 into %d message(s)", len(self.messages))
                return
            raise self._errors.data_format("no block 4 found")

        trailer = "\n".join(segment)
        if trailer:
            self.other_data.append(trailer)

    def _add_block(self, leading: str, payload: str) -> None:
        messages = self.parse_block4(payload)
        if not messages:
            raise self._errors.data_format("block 4 holds no messages")
        self.other_data.append(leading)
        self.other_data.extend([""] * (len(messages) - 1))
        self.messages.extend(messages)
        logger.debug("Parsed block 4 into %d message(s)", len(messages))

    def parse_block4(self, text: str) -> List[Message]:
        """
        Parses the fields of one block 4 payload into messages.

        ``:20:`` opens a new message; any other field before it is a
        structural error. ``:86:`` belongs to the last statement line, or to
        the message while it has no lines yet.
        """
        text = re.sub(r"\n-\s*\Z", "", text.rstrip())
        matches = list(self._FIELD.finditer(text))
        head = text[: matches[0].start()] if matches else text
        if head.strip():
            raise self._errors.data_format(f"unexpected text before the first field: '{head.strip()}'")

        messages: List[Message] = []
        current: Optional[Message] = None

        for position, match in enumerate(matches):
            tag = match.group(1)
            end = matches[position + 1].start() if position + 1 < len(matches) else len(text)
            value = text[match.end():end].rstrip()

            if tag == "20":
                current = Message(transaction_ref_no=value)
                messages.append(current)
                continue
            if tag not in self._HANDLED_TAGS:
                raise self._errors.unsupported_tag(f"unknown or unsupported tag '{tag}'")
            if current is None:
                raise self._errors.data_format(f"tag {tag} found before tag 20")

            if tag == "21":
                current.ref_to_related_msg = value
            elif tag == "25":
                current.account_id = value
            elif tag in ("28", "28C"):
                statement_no, separator, sequence_no = value.partition("/")
                current.statement_no = statement_no
                current.sequence_no = sequence_no if separator else None
            elif tag in ("60F", "60M"):
                current.opening_balance = self.parse_balance(value, intermediate=tag.endswith("M"))
            elif tag == "61":
                current.statement_lines.append(self.parse_statement_line(value))
            elif tag == "86":
                if current.statement_lines:
                    current.statement_lines[-1].information_to_account_owner = value
                else:
                    current.information_to_account_owner = value
            elif tag in ("62F", "62M"):
                current.closing_balance = self.parse_balance(value, intermediate=tag.endswith("M"))
            elif tag == "64":
                current.closing_available_balance = self.parse_balance(value, long_date=True).to_available()
            elif tag == "65":
                current.forward_available_balance = self.parse_balance(value, long_date=True).to_available()

        return messages

    def _indicator(self, code: str) -> DebitOrCredit:
        try:
            return DebitOrCredit.from_code(code)
        except UnknownValueFormat as e:
            raise self._errors.unknown_value(e.detail) from None

    def _amount(self, text: str, what: str) -> Decimal:
        try:
            return Decimal(text.strip().replace(",", "."))
        except InvalidOperation:
            raise self._errors.unknown_value(f"failed to parse {what} amount '{text}'") from None

    def parse_balance(self, value: str, intermediate: bool = False, long_date: bool = False) -> Balance:
        """
        Parses a positional balance: D/C mark, date, currency, amount.

        Tags 60 and 62 carry a YYMMDD date (11 characters at least), tags 64
        and 65 a YYYYMMDD date (13 characters). A 6-digit date is accepted for
        the long variant too.
        """
        s = value.strip()
        if len(s) < 11:
            raise self._errors.unknown_value(f"balance is too short: '{s}'")

        indicator = self._indicator(s[0])
        date_len = 8 if long_date and s[1:9].isdigit() else 6
        if len(s) < date_len + 5:
            raise self._errors.unknown_value(f"balance is too short: '{s}'")
        date_fmt = "%Y%m%d" if date_len == 8 else "%y%m%d"
        try:
            balance_date = datetime.strptime(s[1 : 1 + date_len], date_fmt).date()
        except ValueError:
            raise self._errors.unknown_value(f"failed to parse balance date in '{s}'") from None

        currency = s[1 + date_len : 4 + date_len]
        amount = self._amount(s[4 + date_len :], "balance")
        return Balance(
            debit_or_credit=indicator,
            date=balance_date,
            currency=currency,
            amount=amount,
            is_intermediate=intermediate,
        )

    def parse_statement_line(self, raw: str) -> StatementLine:
        """Parses the positional sub-fields of a ``:61:`` value."""
        s = raw.replace("\n", "").strip()

        if len(s) < 6:
            raise self._errors.unknown_value(f"no value date in tag 61: '{s}'")
        try:
            value_date = datetime.strptime(s[:6], "%y%m%d").date()
        except ValueError:
            raise self._errors.unknown_value(f"failed to parse value date in tag 61: '{s}'") from None
        i = 6

        entry_date: Optional[date] = None
        if s[i : i + 4].isdigit() and len(s[i : i + 4]) == 4:
            try:
                entry_date = datetime.strptime(f"{value_date.year}{s[i:i + 4]}", "%Y%m%d").date()
            except ValueError:
                logger.warning("Ignoring invalid entry date '%s' in tag 61", s[i : i + 4])
            i += 4

        if len(s) < i + 2:
            raise self._errors.unknown_value(f"no debit/credit mark in tag 61: '{s}'")
        if s[i : i + 2] in ("RD", "RC"):
            indicator = self._indicator(s[i : i + 2])
            i += 2
        else:
            indicator = self._indicator(s[i])
            i += 1

        funds_code = None
        if i + 1 < len(s) and s[i].isascii() and s[i].isalpha() and s[i + 1].isdigit():
            funds_code = s[i]
            i += 1

        m = self._AMOUNT.match(s, i)
        if m is None:
            raise self._errors.unknown_value(f"failed to find the amount in tag 61: '{s}'")
        amount = self._amount(m.group(0), "statement line")
        i = m.end()

        if len(s) < i + 4 or s[i] != "N":
            raise self._errors.unknown_value(f"no transaction type (NXXX) in tag 61: '{s}'")
        type_code = s[i + 1 : i + 4]
        tail = s[i + 4 :]

        bank_ref = None
        supplementary = None
        if "//" in tail:
            customer_ref, right = tail.split("//", 1)
            bank_ref = right[:16]
            supplementary = right[16:] or None
        elif len(tail) > 16:
            customer_ref, supplementary = tail[:16], tail[16:]
        else:
            customer_ref = tail

        return StatementLine(
            value_date=value_date,
            entry_date=entry_date,
            ext_debit_credit_indicator=indicator,
            funds_code=funds_code,
            amount=amount,
            transaction_type_ident_code=type_code,
            customer_ref=customer_ref,
            bank_ref=bank_ref,
            supplementary_details=supplementary,
        )

    def _date(self, value: Optional[date], fmt: str, what: str) -> str:
        if value is None:
            logger.warning("%s has no date, writing %s", what, DEFAULT_DATE.isoformat())
            value = DEFAULT_DATE
        return value.strftime(fmt)

    def _format_balance(self, balance: AvailableBalance, long_date: bool, what: str) -> str:
        return (
            balance.debit_or_credit.value
            + self._date(balance.date, "%Y%m%d" if long_date else "%y%m%d", what)
            + balance.currency
            + format_amount(balance.amount)
        )

    def _format_statement_line(self, line: StatementLine) -> str:
        text = self._date(line.value_date, "%y%m%d", "statement line")
        if line.entry_date is not None:
            text += line.entry_date.strftime("%m%d")
        text += line.ext_debit_credit_indicator.value
        if line.funds_code:
            text += line.funds_code
        text += format_amount(line.amount)
        text += "N" + line.transaction_type_ident_code
        text += line.customer_ref
        if line.bank_ref is not None:
            text += "//" + line.bank_ref
        if line.supplementary_details:
            text += line.supplementary_details
        return text

    def format_message(self, message: Message) -> str:
        """One ``{4:`` block for `message`, or "" when it has nothing to write."""
        fields = []
        if message.transaction_ref_no:
            fields.append(("20", message.transaction_ref_no))
        if message.ref_to_related_msg is not None:
            fields.append(("21", message.ref_to_related_msg))
        if message.account_id:
            fields.append(("25", message.account_id))
        if message.statement_no:
            value = message.statement_no
            if message.sequence_no is not None:
                value += "/" + message.sequence_no
            fields.append(("28C", value))
        if message.opening_balance.amount != 0:
            tag = "60M" if message.opening_balance.is_intermediate else "60F"
            fields.append((tag, self._format_balance(message.opening_balance, False, "opening balance")))
        # read back as message narrative only while no :61: precedes it
        if message.information_to_account_owner is not None:
            fields.append(("86", message.information_to_account_owner))
        for line in message.statement_lines:
            fields.append(("61", self._format_statement_line(line)))
            if line.information_to_account_owner is not None:
                fields.append(("86", line.information_to_account_owner))
        if message.closing_balance.amount != 0:
            tag = "62M" if message.closing_balance.is_intermediate else "62F"
            fields.append((tag, self._format_balance(message.closing_balance, False, "closing balance")))
        if message.closing_available_balance is not None:
            fields.append(
                ("64", self._format_balance(message.closing_available_balance, True, "closing available balance"))
            )
        if message.forward_available_balance is not None:
            fields.append(
                ("65", self._format_balance(message.forward_available_balance, True, "forward available balance"))
            )

        if not fields:
            return ""
        return "{4:\n" + "".join(f":{tag}:{value}\n" for tag, value in fields) + "-}"

    def to_bytes(self) -> bytes:
        parts = []
        for index, message in enumerate(self.messages):
            if index < len(self.other_data):
                parts.append(self.other_data[index])
            parts.append(self.format_message(message))
        parts.extend(self.other_data[len(self.messages):])
        try:
            return "".join(parts).encode(self.settings.mt940_encoding)
        except UnicodeEncodeError as e:
            raise self._errors.read_write(f"failed to encode MT940 text: {e}") from e

    def write_to(self, stream: BinaryIO) -> None:
        data = self.to_bytes()
        try:
            stream.write(data)
        except OSError as e:
            raise self._errors.read_write(f"failed to write the MT940 stream: {e}") from e

    def collect_transactions(self) -> List[Transaction]:
        transactions = [
            Transaction(
                amount=line.amount,
                currency=message.opening_balance.currency,
                date=line.value_date,
                operation_type=line.ext_debit_credit_indicator,
            )
            for message in self.messages
            for line in message.statement_lines
        ]
        logger.debug("Collected %d MT940 transactions", len(transactions))
        return transactions
