"""
Integrations with third-party libraries like Pydantic and FastAPI.
"""

from .pydantic import from_dataclass, PydanticMessage, PydanticTransaction
from .fastapi import get_statement, get_transactions

__all__ = [
    "from_dataclass",
    "PydanticMessage",
    "PydanticTransaction",
    "get_statement",
    "get_transactions",
]
