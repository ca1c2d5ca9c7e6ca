import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from openstatement.camt053 import (
    Camt053Format,
    local_path,
    looks_like_iban,
    parse_date,
    parse_decimal,
    statement_path,
)
from openstatement.config import Settings
from openstatement.logging_setup import get_logger
from openstatement.models import (
    AvailableBalance,
    Balance,
    DebitOrCredit,
    Message,
    StatementLine,
)
from openstatement.mt940 import MT940Format
from openstatement.tag_tree import TagTree

logger = get_logger(__name__)

CAMT053_NAMESPACE = "urn:iso:std:iso:20022:tech:xsd:camt.053.001.02"
DEFAULT_TYPE_CODE = "MSC"

_CUSTOMER_REFS = {
    "/Stmt/Ntry/NtryDtls/TxDtls/Refs/EndToEndId",
    "/Stmt/Ntry/NtryDtls/TxDtls/Refs/MndtId",
    "/Stmt/Ntry/NtryDtls/TxDtls/Refs/InstrId",
    "/Stmt/Ntry/NtryDtls/TxDtls/Refs/PmtInfId",
}
_BANK_REFS = {
    "/Stmt/Ntry/AcctSvcrRef",
    "/Stmt/Ntry/NtryDtls/TxDtls/Refs/AcctSvcrRef",
    "/Stmt/Ntry/NtryDtls/TxDtls/Refs/TxId",
}
_NARRATIVES = {
    "/Stmt/Ntry/NtryDtls/TxDtls/AddtlTxInf",
    "/Stmt/Ntry/AddtlNtryInf",
}


def _iso_date(value: Optional[date]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _iso_datetime(value: Optional[date]) -> Optional[str]:
    return value.strftime("%Y-%m-%dT00:00:00") if value is not None else None


class _TreeWriter:
    """Small helper appending elements to a `TagTree`, skipping absent values."""

    def __init__(self, tree: TagTree):
        self.tree = tree

    def node(self, parent: int, name: str, text: Optional[str] = None, **attributes) -> int:
        """Adds `name` under `parent`; empty attribute values are left out."""
        pairs = [(key, value) for key, value in attributes.items() if value]
        return self.tree.add(name, text=text, attributes=pairs, parent=parent)

    def leaf(self, parent: int, name: str, text: Optional[str]) -> None:
        if text is not None:
            self.node(parent, name, text)

    def path(self, parent: int, names: str, text: Optional[str]) -> None:
        """Adds a chain such as ``"ValDt/Dt"`` ending in `text`, unless `text` is None."""
        if text is None:
            return
        *branches, last = names.split("/")
        for name in branches:
            parent = self.node(parent, name)
        self.node(parent, last, text)


class _CamtReader:
    """State of one pass over a CAMT.053 tree while building MT940 messages."""

    def __init__(self):
        self.messages = []
        self.message: Optional[Message] = None
        self.account_currency = ""
        self.balance: Optional[Balance] = None
        self.balance_code = ""
        self.line: Optional[StatementLine] = None
        self.reversal = False

    def _balance_target(self, code: str) -> AvailableBalance:
        message = self.message
        if code == "CLBD":
            return message.closing_balance
        if code == "CLAV":
            if message.closing_available_balance is None:
                message.closing_available_balance = AvailableBalance()
            return message.closing_available_balance
        if code == "FWAV":
            if message.forward_available_balance is None:
                message.forward_available_balance = AvailableBalance()
            return message.forward_available_balance
        if code != "OPBD":
            logger.warning("Unknown balance type '%s' merged into the opening balance", code)
        return message.opening_balance

    def flush_balance(self) -> None:
        if self.balance is not None and self.balance_code:
            self._balance_target(self.balance_code).merge(self.balance)
        self.balance = None
        self.balance_code = ""

    def flush_line(self) -> None:
        line = self.line
        if line is None:
            return
        if self.reversal:
            line.ext_debit_credit_indicator = (
                DebitOrCredit.REVERSE_CREDIT
                if line.ext_debit_credit_indicator.is_credit
                else DebitOrCredit.REVERSE_DEBIT
            )
        if len(line.transaction_type_ident_code) != 3:
            line.transaction_type_ident_code = DEFAULT_TYPE_CODE
        if line.value_date is None:
            line.value_date = line.entry_date
        self.message.statement_lines.append(line)
        self.line = None
        self.reversal = False

    def flush_message(self) -> None:
        if self.message is None:
            return
        self.flush_balance()
        self.flush_line()
        if not self.message.opening_balance.currency and self.account_currency:
            self.message.opening_balance.currency = self.account_currency
        self.messages.append(self.message)
        self.message = None
        self.account_currency = ""

    def read_statement_field(self, suffix: str, text: str) -> None:
        message = self.message
        if suffix == "/Stmt/Id":
            message.transaction_ref_no = text
        elif suffix in ("/Stmt/Acct/Id/IBAN", "/Stmt/Acct/Id/Othr/Id"):
            message.account_id = text
        elif suffix == "/Stmt/Acct/Ccy":
            self.account_currency = text
        elif suffix == "/Stmt/ElctrncSeqNb":
            message.statement_no = text
        elif suffix == "/Stmt/LglSeqNb":
            if text:
                message.sequence_no = text
        elif suffix == "/Stmt/AddtlStmtInf":
            if text:
                message.information_to_account_owner = text

    def read_balance_field(self, suffix: str, view) -> None:
        if self.balance is None:
            self.balance = Balance()
        text = view.text
        if suffix == "/Stmt/Bal/Tp/CdOrPrtry/Cd":
            self.balance_code = text
        elif suffix == "/Stmt/Bal/CdtDbtInd":
            self.balance.debit_or_credit = DebitOrCredit.from_camt_code(text)
        elif suffix in ("/Stmt/Bal/Dt/Dt", "/Stmt/Bal/Dt/DtTm"):
            parsed = parse_date(text)
            if parsed is not None:
                self.balance.date = parsed
        elif suffix == "/Stmt/Bal/Amt":
            amount = parse_decimal(text)
            if amount is not None:
                self.balance.amount = amount
            currency = view.get_attr("Ccy")
            if currency:
                self.balance.currency = currency

    def read_entry_field(self, suffix: str, view) -> None:
        line = self.line
        text = view.text
        if suffix in ("/Stmt/Ntry/ValDt/Dt", "/Stmt/Ntry/ValDt/DtTm"):
            line.value_date = parse_date(text) or line.value_date
        elif suffix in ("/Stmt/Ntry/BookgDt/Dt", "/Stmt/Ntry/BookgDt/DtTm"):
            line.entry_date = parse_date(text) or line.entry_date
        elif suffix == "/Stmt/Ntry/CdtDbtInd":
            line.ext_debit_credit_indicator = DebitOrCredit.from_camt_code(text)
        elif suffix == "/Stmt/Ntry/RvslInd":
            self.reversal = text.strip().lower() == "true"
        elif suffix == "/Stmt/Ntry/Amt":
            amount = parse_decimal(text)
            if amount is not None:
                line.amount = amount
        elif suffix == "/Stmt/Ntry/BkTxCd/Prtry/Issr":
            line.transaction_type_ident_code = text
        elif suffix in _CUSTOMER_REFS:
            line.customer_ref = text
        elif suffix in _BANK_REFS:
            line.bank_ref = text
        elif suffix == "/Stmt/Ntry/AddtlTxInf":
            line.supplementary_details = text
        elif suffix in _NARRATIVES:
            if line.information_to_account_owner:
                line.information_to_account_owner += " " + text
            else:
                line.information_to_account_owner = text


class Translator:
    """
    Converts statements between MT940 and CAMT.053.

    Both directions are best-effort field projections: they never raise, and
    source fields with no counterpart are dropped. The result never shares
    nodes, messages or lines with the source.
    """

    @staticmethod
    def mt940_to_camt053(mt: MT940Format, settings: Optional[Settings] = None) -> Camt053Format:
        """
        Builds one ``BkToCstmrStmt`` document with a ``Stmt`` per MT940 message.
        """
        settings = settings or mt.settings
        tree = TagTree()
        w = _TreeWriter(tree)

        document = tree.add("Document", attributes=[("xmlns", CAMT053_NAMESPACE)])
        root = w.node(document, "BkToCstmrStmt")
        header = w.node(root, "GrpHdr")
        w.leaf(header, "MsgId", str(uuid.uuid4()))
        w.leaf(header, "CreDtTm", datetime.now().strftime("%Y-%m-%dT%H:%M:%S"))
        related = next((m.ref_to_related_msg for m in mt.messages if m.ref_to_related_msg), None)
        w.path(header, "OrgnlBizQry/MsgId", related)

        for message in mt.messages:
            Translator._write_statement(w, root, message, settings)

        logger.debug("Converted %d MT940 message(s) into CAMT.053", len(mt.messages))
        return Camt053Format(tree, settings)

    @staticmethod
    def _write_statement(w: _TreeWriter, root: int, message: Message, settings: Settings) -> None:
        currency = message.opening_balance.currency
        stmt = w.node(root, "Stmt")

        statement_id = message.statement_no
        if message.sequence_no is not None:
            statement_id += "/" + message.sequence_no
        w.leaf(stmt, "Id", statement_id)
        w.leaf(stmt, "ElctrncSeqNb", message.statement_no or None)
        w.leaf(stmt, "LglSeqNb", message.sequence_no)

        opening_date = message.opening_balance.date
        closing_date = message.closing_balance.date
        if opening_date is not None or closing_date is not None:
            period = w.node(stmt, "FrToDt")
            w.leaf(period, "FrDtTm", _iso_datetime(opening_date))
            w.leaf(period, "ToDtTm", _iso_datetime(closing_date))

        account = w.node(stmt, "Acct")
        account_id = w.node(account, "Id")
        if looks_like_iban(message.account_id, settings):
            w.leaf(account_id, "IBAN", message.account_id)
        else:
            w.path(account_id, "Othr/Id", message.account_id)
        w.leaf(account, "Ccy", currency or None)

        Translator._write_balance(w, stmt, message.opening_balance, "OPBD")
        Translator._write_balance(w, stmt, message.closing_balance, "CLBD")
        if message.closing_available_balance is not None:
            Translator._write_balance(w, stmt, message.closing_available_balance, "CLAV")
        if message.forward_available_balance is not None:
            Translator._write_balance(w, stmt, message.forward_available_balance, "FWAV")

        Translator._write_summary(w, stmt, message)

        for line in message.statement_lines:
            Translator._write_entry(w, stmt, line, currency)

        w.leaf(stmt, "AddtlStmtInf", message.information_to_account_owner)

    @staticmethod
    def _write_balance(w: _TreeWriter, stmt: int, balance: AvailableBalance, code: str) -> None:
        bal = w.node(stmt, "Bal")
        w.path(bal, "Tp/CdOrPrtry/Cd", code)
        w.node(bal, "Amt", str(balance.amount), Ccy=balance.currency)
        w.leaf(bal, "CdtDbtInd", balance.debit_or_credit.camt_code)
        w.path(bal, "Dt/Dt", _iso_date(balance.date))

    @staticmethod
    def _write_summary(w: _TreeWriter, stmt: int, message: Message) -> None:
        credits = [line.amount for line in message.statement_lines if line.ext_debit_credit_indicator.is_credit]
        debits = [line.amount for line in message.statement_lines if not line.ext_debit_credit_indicator.is_credit]
        credit_sum = sum(credits, Decimal(0))
        debit_sum = sum(debits, Decimal(0))
        net = credit_sum - debit_sum

        summary = w.node(stmt, "TxsSummry")
        total = w.node(summary, "TtlNtries")
        w.leaf(total, "NbOfNtries", str(len(message.statement_lines)))
        w.leaf(total, "TtlNetNtryAmt", str(abs(net)))
        w.leaf(total, "CdtDbtInd", "CRDT" if net > 0 else "DBIT")
        credit = w.node(summary, "TtlCdtNtries")
        w.leaf(credit, "NbOfNtries", str(len(credits)))
        w.leaf(credit, "Sum", str(credit_sum))
        debit = w.node(summary, "TtlDbtNtries")
        w.leaf(debit, "NbOfNtries", str(len(debits)))
        w.leaf(debit, "Sum", str(debit_sum))

    @staticmethod
    def _write_entry(w: _TreeWriter, stmt: int, line: StatementLine, currency: str) -> None:
        indicator = line.ext_debit_credit_indicator
        entry = w.node(stmt, "Ntry")
        w.node(entry, "Amt", str(line.amount), Ccy=currency)
        w.leaf(entry, "CdtDbtInd", indicator.camt_code)
        w.leaf(entry, "RvslInd", "true" if indicator.is_reversal else "false")
        w.leaf(entry, "Sts", "BOOK")
        w.path(entry, "BookgDt/Dt", _iso_date(line.entry_date))
        w.path(entry, "ValDt/Dt", _iso_date(line.value_date))
        w.leaf(entry, "AcctSvcrRef", line.bank_ref)

        code = line.customer_ref
        if line.supplementary_details:
            code += "/" + line.supplementary_details
        proprietary = w.node(w.node(entry, "BkTxCd"), "Prtry")
        w.leaf(proprietary, "Cd", code)
        w.leaf(proprietary, "Issr", "MT940")

        w.leaf(entry, "AddtlTxInf", line.supplementary_details)

        details = w.node(w.node(entry, "NtryDtls"), "TxDtls")
        refs = w.node(details, "Refs")
        w.leaf(refs, "EndToEndId", line.customer_ref)
        w.leaf(refs, "TxId", line.bank_ref)
        w.leaf(details, "AddtlTxInf", line.information_to_account_owner)

    @staticmethod
    def camt053_to_mt940(camt: Camt053Format, settings: Optional[Settings] = None) -> MT940Format:
        """
        Builds MT940 messages from a single pass over the CAMT.053 tag paths.

        Balance fields are accumulated per ``Bal`` block and merged into the
        balance named by its type code when the next block, statement or the
        end of the document is reached.
        """
        reader = _CamtReader()
        related = None

        for view in camt.iter_tags():
            suffix = statement_path(view.path)
            if suffix is None:
                if local_path(view.path).endswith("/GrpHdr/OrgnlBizQry/MsgId"):
                    related = view.text
                continue

            if suffix == "/Stmt":
                reader.flush_message()
                reader.message = Message()
            elif reader.message is None:
                continue
            elif suffix == "/Stmt/Bal":
                reader.flush_balance()
                reader.balance = Balance()
            elif suffix.startswith("/Stmt/Bal/"):
                reader.read_balance_field(suffix, view)
            elif suffix == "/Stmt/Ntry":
                reader.flush_line()
                reader.line = StatementLine()
            elif suffix.startswith("/Stmt/Ntry/"):
                if reader.line is not None:
                    reader.read_entry_field(suffix, view)
            else:
                reader.read_statement_field(suffix, view.text)

        reader.flush_message()
        if related:
            for message in reader.messages:
                message.ref_to_related_msg = related

        logger.debug("Converted CAMT.053 into %d MT940 message(s)", len(reader.messages))
        return MT940Format(reader.messages, [], settings or camt.settings)
