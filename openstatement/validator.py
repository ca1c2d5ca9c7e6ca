import re
from decimal import Decimal
from typing import List, Optional

from openstatement.camt053 import Camt053Format, looks_like_iban
from openstatement.config import Settings
from openstatement.csv_format import CSVFormat
from openstatement.models import AvailableBalance, Message, ValidationReport
from openstatement.mt940 import MT940Format
from openstatement.translator import Translator


class Validator:
    """
    Consistency checks over parsed statements: account identifiers,
    currency codes and balance continuity.
    """

    _iban_clean_pattern = re.compile(r"[^A-Z0-9]")
    _iban_format_pattern = re.compile(r"\A[A-Z]{2}[0-9]{2}[A-Z0-9]{11,30}\Z")
    _currency_pattern = re.compile(r"\A[A-Z]{3}\Z")

    @staticmethod
    def is_likely_iban(account: str, settings: Optional[Settings] = None) -> bool:
        """
        Length heuristic deciding whether an account id is written as an IBAN
        in CAMT.053 (15 to 34 characters once whitespace is removed).
        """
        if not account:
            return False
        return looks_like_iban(account, settings)

    @staticmethod
    def _has_iban_prefix(account: str) -> bool:
        """
        Whether the account starts like an IBAN: 2-letter country code and
        2 check digits. Only such accounts get the checksum test.
        """
        clean = Validator._iban_clean_pattern.sub("", account.upper())
        return bool(re.match(r"\A[A-Z]{2}[0-9]{2}", clean))

    @staticmethod
    def validate_iban(iban: str) -> Optional[str]:
        """
        Validates an International Bank Account Number (IBAN) using the
        Modulo-97 algorithm.
        Returns None if valid, or an error string if invalid.
        """
        if not iban:
            return None

        if len(iban) > 100:
            return "Invalid IBAN structure: excessively long string rejected."

        # Only spaces, hyphens and dots are tolerated as formatting.
        formatted = re.sub(r"[ \-\.]", "", iban.strip().upper())
        if not Validator._iban_format_pattern.match(formatted):
            return f"Invalid IBAN format: '{iban.strip()}' does not meet ISO 13616 standards."

        rearranged = formatted[4:] + formatted[:4]
        # A=10, B=11 ... Z=35
        numeric = "".join(str(ord(ch) - 55) if ch.isalpha() else ch for ch in rearranged)
        if int(numeric) % 97 != 1:
            return f"Invalid IBAN checksum: '{formatted}'. Failed Modulo-97 algorithm."
        return None

    @staticmethod
    def _validate_currency(currency: str, where: str) -> Optional[str]:
        if not currency:
            return None
        if not Validator._currency_pattern.match(currency):
            return f"[{where}] currency must be exactly 3 uppercase letters, found: '{currency}'"
        return None

    @staticmethod
    def _is_set(balance: Optional[AvailableBalance]) -> bool:
        return balance is not None and (balance.date is not None or balance.amount != 0)

    @staticmethod
    def validate(message: Message) -> ValidationReport:
        """
        Checks a single MT940 message.

        Rules: a transaction reference is present, an IBAN-looking account
        passes Modulo-97, currencies are 3 letters and agree with the opening
        balance, every statement line has a value date, and the opening
        balance plus the signed statement lines equals the closing balance.
        """
        errors: List[str] = []

        if not message.transaction_ref_no:
            errors.append("Missing transaction reference (tag 20).")

        if message.account_id and Validator._has_iban_prefix(message.account_id):
            err = Validator.validate_iban(message.account_id)
            if err:
                errors.append(f"[Account] {err}")

        opening = message.opening_balance
        balances = [
            ("Opening Balance", opening),
            ("Closing Balance", message.closing_balance),
            ("Closing Available Balance", message.closing_available_balance),
            ("Forward Available Balance", message.forward_available_balance),
        ]
        for where, balance in balances:
            if balance is None:
                continue
            err = Validator._validate_currency(balance.currency, where)
            if err:
                errors.append(err)
            elif opening.currency and balance.currency and balance.currency != opening.currency:
                errors.append(
                    f"[{where}] currency '{balance.currency}' differs from the opening "
                    f"balance currency '{opening.currency}'"
                )

        total = Decimal(0)
        for i, line in enumerate(message.statement_lines):
            if line.value_date is None:
                errors.append(f"[Statement Line {i}] value date is missing.")
            total += line.amount if line.ext_debit_credit_indicator.is_credit else -line.amount

        if Validator._is_set(opening) and Validator._is_set(message.closing_balance):
            expected = opening.signed_amount + total
            actual = message.closing_balance.signed_amount
            if expected != actual:
                errors.append(
                    f"Balance mismatch: opening {opening.signed_amount} plus statement lines "
                    f"{total} gives {expected}, but the closing balance is {actual}."
                )

        return ValidationReport(is_valid=not errors, errors=errors)

    @staticmethod
    def validate_document(document) -> ValidationReport:
        """
        Validates every statement of a parsed document.

        CAMT.053 documents are checked through their MT940 projection; a CSV
        table carries no balances, so a parsed one is always valid.
        """
        if isinstance(document, CSVFormat):
            return ValidationReport(is_valid=True, errors=[])
        if isinstance(document, Camt053Format):
            document = Translator.camt053_to_mt940(document)
        if not isinstance(document, MT940Format):
            raise TypeError(f"Cannot validate {type(document).__name__}")

        errors: List[str] = []
        for index, message in enumerate(document.messages):
            report = Validator.validate(message)
            label = message.transaction_ref_no or str(index)
            errors.extend(f"[Message {label}] {err}" for err in report.errors)
        return ValidationReport(is_valid=not errors, errors=errors)
