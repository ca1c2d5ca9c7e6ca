import datetime
from decimal import Decimal
from typing import List, Optional, Union

from pydantic import BaseModel, ConfigDict

from openstatement.models import (
    AvailableBalance,
    Balance,
    DebitOrCredit,
    Message,
    StatementLine,
    Transaction,
)


class PydanticAvailableBalance(BaseModel):
    model_config = ConfigDict(from_attributes=True, use_enum_values=True)

    debit_or_credit: DebitOrCredit = DebitOrCredit.DEBIT
    date: Optional[datetime.date] = None
    currency: str = ""
    amount: Decimal = Decimal(0)


class PydanticBalance(PydanticAvailableBalance):
    is_intermediate: bool = False


class PydanticStatementLine(BaseModel):
    model_config = ConfigDict(from_attributes=True, use_enum_values=True)

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


class PydanticMessage(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    transaction_ref_no: str = ""
    ref_to_related_msg: Optional[str] = None
    account_id: str = ""
    statement_no: str = ""
    sequence_no: Optional[str] = None
    opening_balance: PydanticBalance
    statement_lines: List[PydanticStatementLine] = []
    closing_balance: PydanticBalance
    closing_available_balance: Optional[PydanticAvailableBalance] = None
    forward_available_balance: Optional[PydanticAvailableBalance] = None
    information_to_account_owner: Optional[str] = None


class PydanticTransaction(BaseModel):
    model_config = ConfigDict(from_attributes=True, use_enum_values=True)

    amount: Decimal
    currency: str = ""
    date: Optional[datetime.date] = None
    operation_type: DebitOrCredit


PydanticModel = Union[
    PydanticMessage,
    PydanticStatementLine,
    PydanticBalance,
    PydanticAvailableBalance,
    PydanticTransaction,
]


def from_dataclass(obj) -> PydanticModel:
    """
    Converts a core OpenStatement dataclass into its Pydantic equivalent.
    """
    if isinstance(obj, Message):
        return PydanticMessage.model_validate(obj)
    if isinstance(obj, StatementLine):
        return PydanticStatementLine.model_validate(obj)
    if isinstance(obj, Balance):
        return PydanticBalance.model_validate(obj)
    if isinstance(obj, AvailableBalance):
        return PydanticAvailableBalance.model_validate(obj)
    if isinstance(obj, Transaction):
        return PydanticTransaction.model_validate(obj)
    raise TypeError(f"No Pydantic model for {type(obj).__name__}")
