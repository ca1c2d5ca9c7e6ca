import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

ENV_PREFIX = "OPENSTATEMENT_"


@dataclass(frozen=True)
class Settings:
    """
    Runtime knobs shared by the statement engines.

    Attributes:
        csv_posting_date_label (str): Header cell anchoring the CSV table.
        csv_debit_label (str): Header of the debit amount column.
        csv_credit_label (str): Header of the credit amount column.
        csv_encoding (str): Codec used to read and write CSV exports.
        mt940_encoding (str): Codec used to read and write MT940 text.
        iban_min_length (int): Shortest account id treated as an IBAN.
        iban_max_length (int): Longest account id treated as an IBAN.
        log_level (Optional[str]): Level name passed to configure_logging.
    """

    csv_posting_date_label: str = "Дата проводки"
    csv_debit_label: str = "Сумма по дебету"
    csv_credit_label: str = "Сумма по кредиту"
    csv_encoding: str = "utf-8-sig"
    mt940_encoding: str = "utf-8"
    iban_min_length: int = 15
    iban_max_length: int = 34
    log_level: Optional[str] = None

    @classmethod
    def from_env(cls, environ: Optional[dict] = None) -> "Settings":
        """
        Builds settings from OPENSTATEMENT_* variables, e.g.
        OPENSTATEMENT_CSV_ENCODING or OPENSTATEMENT_IBAN_MIN_LENGTH.
        Unset variables keep their defaults.
        """
        env = os.environ if environ is None else environ
        defaults = cls()
        values = {}
        for name in defaults.__dataclass_fields__:
            raw = env.get(ENV_PREFIX + name.upper())
            if raw is None:
                continue
            if isinstance(getattr(defaults, name), int):
                try:
                    values[name] = int(raw)
                except ValueError:
                    raise ValueError(
                        f"{ENV_PREFIX}{name.upper()} must be an integer, got '{raw}'"
                    ) from None
            else:
                values[name] = raw
        return cls(**values)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Process-wide settings, read from the environment on first use."""
    return Settings.from_env()
