import pytest

from openstatement import (
    Camt053Format,
    CSVFormat,
    MT940Format,
    StatementParser,
    compare,
    convert,
    extract_transactions,
    parse,
    serialize,
)
from openstatement.exceptions import DataFormatError
from openstatement.parser import format_name

MOCK_MT940 = b"""{1:F01BANKDEFFAXXX0000000000}{2:O940BANKDEFFXXXXN}{4:
:20:STMT-1
:25:DE89370400440532013000
:28C:1/1
:60F:C240101EUR100,00
:61:2401020102D1,23NTRFREF1//BANK1
:62F:C240102EUR98,77
-}"""

MOCK_CAMT053 = b"""<?xml version="1.0" encoding="UTF-8"?>
<Document><BkToCstmrStmt><Stmt><Ntry>
<Amt Ccy="EUR">12.34</Amt><CdtDbtInd>CRDT</CdtDbtInd><ValDt><Dt>2026-01-01</Dt></ValDt>
</Ntry></Stmt></BkToCstmrStmt></Document>"""

MOCK_CSV = "Дата проводки,Сумма по дебету,Сумма по кредиту\n2026-01-20,123.45,\n".encode("utf-8")


@pytest.mark.parametrize(
    "data, expected",
    [
        (MOCK_MT940, "mt940"),
        (b":20:TRN1\n:25:ACC", "mt940"),
        (b"{4:\n:20:X\n-}", "mt940"),
        (MOCK_CAMT053, "camt053"),
        (b"\xef\xbb\xbf  <Document/>", "camt053"),
        (MOCK_CSV, "csv"),
    ],
)
def test_detect_format(data, expected):
    assert StatementParser.detect_format(data) == expected


def test_parse_dispatches_by_detected_format():
    assert isinstance(parse(MOCK_MT940), MT940Format)
    assert isinstance(parse(MOCK_CAMT053), Camt053Format)
    assert isinstance(parse(MOCK_CSV), CSVFormat)


def test_explicit_format_wins():
    with pytest.raises(DataFormatError) as exc:
        parse(MOCK_MT940, fmt="CSV")
    assert str(exc.value).startswith("CSV table parse error")


def test_unknown_format_name():
    with pytest.raises(ValueError):
        StatementParser(MOCK_MT940, fmt="mt942")


def test_format_name():
    assert format_name(parse(MOCK_MT940)) == "mt940"
    assert format_name(parse(MOCK_CSV)) == "csv"
    with pytest.raises(TypeError):
        format_name(object())


def test_convert_both_directions():
    camt = convert(parse(MOCK_MT940))
    assert isinstance(camt, Camt053Format)
    mt = convert(camt)
    assert isinstance(mt, MT940Format)
    assert compare(parse(MOCK_MT940), mt).is_match


def test_csv_has_no_conversion():
    with pytest.raises(TypeError):
        convert(parse(MOCK_CSV))


def test_serialize_and_reparse():
    document = parse(MOCK_CAMT053)
    assert extract_transactions(parse(serialize(document))) == extract_transactions(document)


def test_extract_transactions_from_every_format():
    assert len(extract_transactions(parse(MOCK_MT940))) == 1
    assert len(extract_transactions(parse(MOCK_CAMT053))) == 1
    assert len(extract_transactions(parse(MOCK_CSV))) == 1


def test_compare_reports_first_mismatch():
    result = compare(parse(MOCK_MT940), parse(MOCK_CAMT053))
    assert not result.is_match
    assert result.position == 0
