"""
Error hierarchy shared by every statement engine.

    FormatError (base)
    ├── DataFormatError      structurally invalid input
    ├── UnknownValueFormat   a value is present but cannot be parsed
    ├── UnsupportedTag       a well-formed but unsupported field tag
    ├── ReadWriteError       stream or codec failure
    └── UnknownError         broken internal invariant

Every error carries the prefix of the engine that raised it, so the text shown
to a user names the format that failed.
"""

from typing import Optional


class FormatError(Exception):
    """
    Base exception for all statement parsing and writing errors.

    Attributes:
        detail (str): Human readable description of the failure.
        prefix (Optional[str]): Engine prefix such as "MT940 parse error".
    """

    def __init__(self, detail: str, prefix: Optional[str] = None):
        self.detail = detail
        self.prefix = prefix
        super().__init__(str(self))

    def __str__(self) -> str:
        if self.prefix:
            return f"{self.prefix} : {self.detail}"
        return self.detail

    def __eq__(self, other: object) -> bool:
        return type(self) is type(other) and str(self) == str(other)

    def __hash__(self) -> int:
        return hash((type(self), str(self)))


class DataFormatError(FormatError):
    """Mismatched tags, a missing mandatory field or block, or an empty result."""


class UnknownValueFormat(FormatError):
    """Bad date, amount or enum code, or a too-short fixed-width field."""


class UnsupportedTag(FormatError):
    """A field tag with a recognised shape that the engine does not support."""


class ReadWriteError(FormatError):
    """The underlying stream or codec failed while reading or writing."""


class UnknownError(FormatError):
    """An internal invariant that should always hold was violated."""


class ErrorFactory:
    """
    Builds errors carrying a fixed engine prefix.

    Each engine keeps one factory as a class attribute and raises through it:

        _errors = ErrorFactory("MT940 parse error")
        raise _errors.data_format("tag 21 found before tag 20")
    """

    def __init__(self, prefix: str):
        self.prefix = prefix

    def data_format(self, detail: str) -> DataFormatError:
        return DataFormatError(detail, self.prefix)

    def unknown_value(self, detail: str) -> UnknownValueFormat:
        return UnknownValueFormat(detail, self.prefix)

    def unsupported_tag(self, detail: str) -> UnsupportedTag:
        return UnsupportedTag(detail, self.prefix)

    def read_write(self, detail: str) -> ReadWriteError:
        return ReadWriteError(detail, self.prefix)

    def unknown(self, detail: str) -> UnknownError:
        return UnknownError(detail, self.prefix)
