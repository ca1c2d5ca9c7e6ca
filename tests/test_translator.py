from datetime import date
from decimal import Decimal

from openstatement.camt053 import Camt053Format
from openstatement.models import Balance, DebitOrCredit, Message, StatementLine
from openstatement.mt940 import MT940Format
from openstatement.translator import CAMT053_NAMESPACE, DEFAULT_TYPE_CODE, Translator

MOCK_MT940 = b"""{1:F01BANKDEFFAXXX0000000000}{2:O940BANKDEFFXXXXN}{4:
:20:STMT-1
:21:QUERY-7
:25:DE89370400440532013000
:28C:42/1
:60F:C240101EUR1000,00
:86:Statement note
:61:2401020102C250,00NTRFINV-1001//BREF-1
:86:Payment for invoice 1001
:61:240103RD50,50NCHGFEES
:62F:C240103EUR1199,50
:64:C20240103EUR1199,50
-}"""

MOCK_CAMT053 = b"""<?xml version="1.0" encoding="UTF-8"?>
<Document xmlns="urn:iso:std:iso:20022:tech:xsd:camt.053.001.02">
  <BkToCstmrStmt>
    <GrpHdr>
      <MsgId>MSG-1</MsgId>
      <OrgnlBizQry><MsgId>QUERY-9</MsgId></OrgnlBizQry>
    </GrpHdr>
    <Stmt>
      <Id>7/2</Id>
      <ElctrncSeqNb>7</ElctrncSeqNb>
      <LglSeqNb>2</LglSeqNb>
      <Acct>
        <Id><Othr><Id>40702810</Id></Othr></Id>
        <Ccy>RUB</Ccy>
      </Acct>
      <Bal>
        <Tp><CdOrPrtry><Cd>OPBD</Cd></CdOrPrtry></Tp>
        <Amt>100.00</Amt>
        <CdtDbtInd>CRDT</CdtDbtInd>
        <Dt><Dt>2026-01-01</Dt></Dt>
      </Bal>
      <Bal>
        <Tp><CdOrPrtry><Cd>CLBD</Cd></CdOrPrtry></Tp>
        <Amt Ccy="RUB">90.00</Amt>
        <CdtDbtInd>CRDT</CdtDbtInd>
        <Dt><DtTm>2026-01-02T18:00:00</DtTm></Dt>
      </Bal>
      <Bal>
        <Tp><CdOrPrtry><Cd>XXXX</Cd></CdOrPrtry></Tp>
        <Amt Ccy="RUB">5.00</Amt>
      </Bal>
      <Ntry>
        <Amt Ccy="RUB">10.00</Amt>
        <CdtDbtInd>DBIT</CdtDbtInd>
        <RvslInd>true</RvslInd>
        <BookgDt><Dt>2026-01-02</Dt></BookgDt>
        <AcctSvcrRef>BANK-REF</AcctSvcrRef>
        <BkTxCd><Prtry><Cd>X</Cd><Issr>FEE</Issr></Prtry></BkTxCd>
        <AddtlTxInf>SUPP</AddtlTxInf>
        <NtryDtls>
          <TxDtls>
            <Refs><EndToEndId>E2E-1</EndToEndId></Refs>
            <AddtlTxInf>first part</AddtlTxInf>
          </TxDtls>
        </NtryDtls>
        <AddtlNtryInf>second part</AddtlNtryInf>
      </Ntry>
      <AddtlStmtInf>statement note</AddtlStmtInf>
    </Stmt>
  </BkToCstmrStmt>
</Document>
"""


def find_first(tree, suffix):
    for view in tree.iter_tags():
        if view.path.endswith(suffix):
            return view
    return None


def text_at(camt, suffix):
    view = find_first(camt.tree, suffix)
    return view.text if view is not None else None


def test_mt940_to_camt053_statement():
    camt = Translator.mt940_to_camt053(MT940Format.from_bytes(MOCK_MT940))

    root = camt.tree[camt.tree.root]
    assert root.name == "Document"
    assert root.get_attr("xmlns") == CAMT053_NAMESPACE
    assert text_at(camt, "/GrpHdr/OrgnlBizQry/MsgId") == "QUERY-7"
    assert text_at(camt, "/Stmt/Id") == "42/1"
    assert text_at(camt, "/Stmt/ElctrncSeqNb") == "42"
    assert text_at(camt, "/Stmt/LglSeqNb") == "1"
    assert text_at(camt, "/Stmt/FrToDt/FrDtTm") == "2024-01-01T00:00:00"
    assert text_at(camt, "/Stmt/Acct/Id/IBAN") == "DE89370400440532013000"
    assert text_at(camt, "/Stmt/Acct/Ccy") == "EUR"
    assert text_at(camt, "/Stmt/AddtlStmtInf") == "Statement note"


def test_mt940_to_camt053_balances_and_summary():
    camt = Translator.mt940_to_camt053(MT940Format.from_bytes(MOCK_MT940))

    codes = [v.text for v in camt.iter_tags() if v.path.endswith("/Bal/Tp/CdOrPrtry/Cd")]
    assert codes == ["OPBD", "CLBD", "CLAV"]
    assert text_at(camt, "/Stmt/Bal/Dt/Dt") == "2024-01-01"

    assert text_at(camt, "/TxsSummry/TtlNtries/NbOfNtries") == "2"
    assert text_at(camt, "/TxsSummry/TtlNtries/TtlNetNtryAmt") == "300.50"
    assert text_at(camt, "/TxsSummry/TtlNtries/CdtDbtInd") == "CRDT"
    assert text_at(camt, "/TxsSummry/TtlCdtNtries/NbOfNtries") == "2"
    assert text_at(camt, "/TxsSummry/TtlDbtNtries/Sum") == "0"


def test_mt940_to_camt053_entries():
    camt = Translator.mt940_to_camt053(MT940Format.from_bytes(MOCK_MT940))

    entry = find_first(camt.tree, "/Stmt/Ntry/Amt")
    assert entry.text == "250.00"
    assert entry.get_attr("Ccy") == "EUR"
    assert text_at(camt, "/Ntry/RvslInd") == "false"
    assert text_at(camt, "/Ntry/Sts") == "BOOK"
    assert text_at(camt, "/Ntry/BookgDt/Dt") == "2024-01-02"
    assert text_at(camt, "/Ntry/ValDt/Dt") == "2024-01-02"
    assert text_at(camt, "/Ntry/AcctSvcrRef") == "BREF-1"
    assert text_at(camt, "/Ntry/BkTxCd/Prtry/Cd") == "INV-1001"
    assert text_at(camt, "/TxDtls/Refs/EndToEndId") == "INV-1001"
    assert text_at(camt, "/TxDtls/Refs/TxId") == "BREF-1"
    assert text_at(camt, "/TxDtls/AddtlTxInf") == "Payment for invoice 1001"

    reversals = [v.text for v in camt.iter_tags() if v.path.endswith("/Ntry/RvslInd")]
    assert reversals == ["false", "true"]


def test_mt940_to_camt053_other_account():
    mt = MT940Format.from_bytes(":20:X\n:25:40702810\n:60F:C240101RUB1,00")
    camt = Translator.mt940_to_camt053(mt)
    assert text_at(camt, "/Acct/Id/Othr/Id") == "40702810"
    assert find_first(camt.tree, "/Acct/Id/IBAN") is None


def test_mt940_to_camt053_transactions_match():
    mt = MT940Format.from_bytes(MOCK_MT940)
    camt = Translator.mt940_to_camt053(mt)
    reparsed = Camt053Format.from_bytes(camt.to_bytes())

    assert len(reparsed.collect_transactions()) == 2
    first = reparsed.collect_transactions()[0]
    assert first == mt.collect_transactions()[0]


def test_camt053_to_mt940_message():
    mt = Translator.camt053_to_mt940(Camt053Format.from_bytes(MOCK_CAMT053))

    (message,) = mt.messages
    assert mt.other_data == []
    assert message.transaction_ref_no == "7/2"
    assert message.ref_to_related_msg == "QUERY-9"
    assert message.account_id == "40702810"
    assert message.statement_no == "7"
    assert message.sequence_no == "2"
    assert message.information_to_account_owner == "statement note"


def test_camt053_to_mt940_balances():
    (message,) = Translator.camt053_to_mt940(Camt053Format.from_bytes(MOCK_CAMT053)).messages

    opening = message.opening_balance
    assert opening.debit_or_credit == DebitOrCredit.CREDIT
    assert opening.date == date(2026, 1, 1)
    # unknown balance codes fall back to the opening balance
    assert opening.amount == Decimal("5.00")
    assert opening.currency == "RUB"

    closing = message.closing_balance
    assert closing.amount == Decimal("90.00")
    assert closing.date == date(2026, 1, 2)
    assert message.closing_available_balance is None


def test_camt053_to_mt940_statement_line():
    (message,) = Translator.camt053_to_mt940(Camt053Format.from_bytes(MOCK_CAMT053)).messages

    (line,) = message.statement_lines
    assert line.amount == Decimal("10.00")
    assert line.ext_debit_credit_indicator == DebitOrCredit.REVERSE_DEBIT
    assert line.entry_date == date(2026, 1, 2)
    assert line.value_date == date(2026, 1, 2)
    assert line.transaction_type_ident_code == "FEE"
    assert line.customer_ref == "E2E-1"
    assert line.bank_ref == "BANK-REF"
    assert line.supplementary_details == "SUPP"
    assert line.information_to_account_owner == "first part second part"


def test_camt053_to_mt940_defaults():
    xml = b"<Document><Stmt><Ntry><Amt>1.00</Amt><BkTxCd><Prtry><Issr>MT940</Issr></Prtry></BkTxCd></Ntry></Stmt></Document>"
    (message,) = Translator.camt053_to_mt940(Camt053Format.from_bytes(xml)).messages

    (line,) = message.statement_lines
    assert line.transaction_type_ident_code == DEFAULT_TYPE_CODE
    assert line.ext_debit_credit_indicator == DebitOrCredit.DEBIT
    assert message.ref_to_related_msg is None


def test_camt053_to_mt940_splits_statements():
    xml = b"""<Document>
      <Stmt><Id>A</Id><Ntry><Amt>1.00</Amt></Ntry>
        <Bal><Tp><CdOrPrtry><Cd>CLBD</Cd></CdOrPrtry></Tp><Amt Ccy="EUR">3.00</Amt></Bal></Stmt>
      <Stmt><Id>B</Id><Ntry><Amt>2.00</Amt></Ntry></Stmt>
    </Document>"""
    first, second = Translator.camt053_to_mt940(Camt053Format.from_bytes(xml)).messages

    assert first.transaction_ref_no == "A"
    assert [line.amount for line in first.statement_lines] == [Decimal("1.00")]
    assert first.closing_balance.amount == Decimal("3.00")
    assert second.transaction_ref_no == "B"
    assert [line.amount for line in second.statement_lines] == [Decimal("2.00")]
    assert second.closing_balance.amount == Decimal(0)


def test_camt053_to_mt940_undated_entry_is_written():
    xml = b"""<Document><Stmt><Id>1</Id>
      <Bal><Tp><CdOrPrtry><Cd>CLBD</Cd></CdOrPrtry></Tp><Amt Ccy="EUR">3.00</Amt></Bal>
      <Ntry><Amt Ccy="EUR">1.00</Amt><CdtDbtInd>CRDT</CdtDbtInd></Ntry>
    </Stmt></Document>"""
    mt = Translator.camt053_to_mt940(Camt053Format.from_bytes(xml))

    (line,) = mt.messages[0].statement_lines
    assert line.value_date is None
    output = mt.to_bytes().decode()
    assert ":61:700101C1,00N" + DEFAULT_TYPE_CODE in output
    assert "700101EUR3,00" in output


def test_mt940_to_camt053_without_currency():
    message = Message(
        transaction_ref_no="X",
        opening_balance=Balance(DebitOrCredit.CREDIT, date(2024, 1, 1), "", Decimal("1")),
        statement_lines=[StatementLine(value_date=date(2024, 1, 2), amount=Decimal("1"))],
    )
    camt = Translator.mt940_to_camt053(MT940Format([message]))

    assert find_first(camt.tree, "/Bal/Amt").get_attr("Ccy") is None
    assert find_first(camt.tree, "/Ntry/Amt").get_attr("Ccy") is None
    assert find_first(camt.tree, "/Acct/Ccy") is None
    assert b"Ccy=" not in camt.to_bytes()


def test_conversion_does_not_share_state():
    mt = MT940Format.from_bytes(MOCK_MT940)
    camt = Translator.mt940_to_camt053(mt)
    back = Translator.camt053_to_mt940(camt)

    back.messages[0].statement_lines[0].amount = Decimal("1")
    assert mt.messages[0].statement_lines[0].amount == Decimal("250.00")


def test_round_trip_mt940_camt053_mt940():
    mt = MT940Format.from_bytes(MOCK_MT940)
    back = Translator.camt053_to_mt940(Translator.mt940_to_camt053(mt))

    original, (message,) = mt.messages[0], back.messages
    assert message.ref_to_related_msg == original.ref_to_related_msg
    assert message.account_id == original.account_id
    assert message.statement_no == original.statement_no
    assert message.sequence_no == original.sequence_no
    assert message.opening_balance == original.opening_balance
    assert message.closing_balance == original.closing_balance
    assert message.closing_available_balance == original.closing_available_balance
    assert [line.ext_debit_credit_indicator for line in message.statement_lines] == [
        line.ext_debit_credit_indicator for line in original.statement_lines
    ]
    assert back.collect_transactions() == mt.collect_transactions()
    # the converted messages can be written as MT940 again
    assert b":61:2401020102C250,00NMSCINV-1001//BREF-1" in back.to_bytes()
