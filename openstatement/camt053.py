import io
import re
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import BinaryIO, Dict, List, Optional, Union

from lxml import etree

from openstatement.config import Settings, get_settings
from openstatement.exceptions import ErrorFactory
from openstatement.logging_setup import get_logger
from openstatement.models import DebitOrCredit, Transaction
from openstatement.tag_tree import CONTAINER, TagIterator, TagTree, TagTreeBuilder

logger = get_logger(__name__)

_STMT_SEGMENT = re.compile(r"/Stmt(?=/|$)")
_PREFIX = re.compile(r"/[^/:]+:")
XML_NS = "http://www.w3.org/XML/1998/namespace"


def local_path(path: str) -> str:
    """Drops namespace prefixes: ``/ns:Document/ns:Stmt`` gives ``/Document/Stmt``."""
    return _PREFIX.sub("/", path)


def statement_path(path: str) -> Optional[str]:
    """
    Returns the part of `path` starting at its first ``Stmt`` segment.

    Namespace prefixes are dropped first, so ``/Document/ns:Stmt/ns:Ntry``
    gives ``/Stmt/Ntry``. Paths outside a statement give None.
    """
    local = local_path(path)
    match = _STMT_SEGMENT.search(local)
    if match is None:
        return None
    return local[match.start():]


def parse_decimal(text: str) -> Optional[Decimal]:
    """Decimal from XML text, accepting a comma as decimal point."""
    try:
        return Decimal(text.strip().replace(",", "."))
    except InvalidOperation:
        return None


def parse_date(text: str) -> Optional[date]:
    """Date from the first 10 characters (YYYY-MM-DD), ignoring any time part."""
    try:
        return datetime.strptime(text[:10], "%Y-%m-%d").date()
    except ValueError:
        return None


def _split_name(qname: str) -> tuple:
    if ":" in qname:
        prefix, local = qname.split(":", 1)
        return prefix, local
    return None, qname


class Camt053Format:
    """
    A CAMT.053 document held as a `TagTree`.

    Element names keep the prefix they were written with and namespace
    declarations are kept as ``xmlns`` attributes, so a parsed document can be
    written back with the same shape.
    """

    _errors = ErrorFactory("CAMT.053 parse error")

    def __init__(self, tree: Optional[TagTree] = None, settings: Optional[Settings] = None):
        self.tree = tree if tree is not None else TagTree()
        self.settings = settings or get_settings()

    @classmethod
    def from_bytes(
        cls, data: Union[bytes, str], settings: Optional[Settings] = None
    ) -> "Camt053Format":
        if isinstance(data, str):
            data = data.encode("utf-8")
        if not data.strip():
            raise cls._errors.data_format("no tags found")
        return cls(cls._build_tree(io.BytesIO(data)), settings)

    @classmethod
    def from_read(cls, stream: BinaryIO, settings: Optional[Settings] = None) -> "Camt053Format":
        try:
            data = stream.read()
        except OSError as e:
            raise cls._errors.read_write(f"failed to read the XML stream: {e}") from e
        return cls.from_bytes(data, settings)

    @classmethod
    def _build_tree(cls, source: BinaryIO) -> TagTree:
        builder = TagTreeBuilder(cls._errors)
        pending_ns: List[tuple] = []
        context = etree.iterparse(
            source,
            events=("start", "end", "comment", "start-ns", "pi"),
            resolve_entities=False,
            no_network=True,
        )
        try:
            for event, payload in context:
                if event == "start-ns":
                    pending_ns.append(payload)
                elif event == "start":
                    attributes = []
                    for prefix, uri in pending_ns:
                        attributes.append((f"xmlns:{prefix}" if prefix else "xmlns", uri))
                    pending_ns = []
                    for key, value in payload.attrib.items():
                        attributes.append((cls._qualified(payload, key, is_attribute=True), value))
                    builder.start(cls._qualified(payload, payload.tag), attributes)
                elif event == "end":
                    text = cls._element_text(payload)
                    if text:
                        builder.data(text)
                    builder.end(cls._qualified(payload, payload.tag))
                elif event == "comment":
                    builder.comment(payload.text)
                else:
                    builder.event(event, payload)
        except etree.XMLSyntaxError as e:
            raise cls._errors.data_format(f"failed to split the XML document into tags: {e}") from e
        except UnicodeDecodeError as e:
            raise cls._errors.read_write(f"failed to decode the XML document: {e}") from e
        return builder.close()

    @staticmethod
    def _qualified(element, name: str, is_attribute: bool = False) -> str:
        """Turns lxml's ``{uri}local`` notation back into ``prefix:local``."""
        if not name.startswith("{"):
            return name
        uri, local = name[1:].split("}", 1)
        prefix = None if is_attribute else element.prefix
        if uri == XML_NS:
            prefix = "xml"
        elif is_attribute:
            for candidate, candidate_uri in element.nsmap.items():
                if candidate and candidate_uri == uri:
                    prefix = candidate
                    break
        return f"{prefix}:{local}" if prefix else local

    @staticmethod
    def _element_text(element) -> Optional[str]:
        chunks = [element.text] + [child.tail for child in element]
        text = None
        for chunk in chunks:
            if chunk and chunk.strip():
                text = chunk.strip()
        return text

    def iter_tags(self) -> TagIterator:
        return TagIterator(self.tree)

    def __iter__(self):
        return self.iter_tags()

    def to_bytes(self) -> bytes:
        """Serializes the document through lxml with an XML declaration."""
        root = self.tree.root
        if root is None:
            raise self._errors.data_format("no tags found")
        try:
            element = self._to_element(root, None, {"xml": XML_NS})
        except ValueError as e:
            raise self._errors.read_write(f"failed to write the XML document: {e}") from e
        return etree.tostring(element, pretty_print=True, xml_declaration=True, encoding="UTF-8")

    def write_to(self, stream: BinaryIO) -> None:
        data = self.to_bytes()
        try:
            stream.write(data)
        except OSError as e:
            raise self._errors.read_write(f"failed to write the XML stream: {e}") from e

    def _to_element(self, index: int, parent, scope: Dict[Optional[str], str]):
        tag = self.tree[index]
        if index == CONTAINER or not tag.name:
            raise self._errors.unknown("the synthetic container cannot be serialized")

        declared: Dict[Optional[str], str] = {}
        plain = []
        for key, value in tag.attributes:
            if key == "xmlns":
                declared[None] = value
            elif key.startswith("xmlns:"):
                declared[key[6:]] = value
            else:
                plain.append((key, value))
        scope = {**scope, **declared}

        name = self._resolve(tag.name, scope, default=True)
        if parent is None:
            element = etree.Element(name, nsmap=declared or None)
        else:
            element = etree.SubElement(parent, name, nsmap=declared or None)

        seen = set()
        for key, value in plain:
            if key in seen:
                continue
            seen.add(key)
            element.set(self._resolve(key, scope, default=False), value)
        if tag.text is not None:
            element.text = tag.text
        for child in tag.children:
            self._to_element(child, element, scope)
        return element

    def _resolve(self, qname: str, scope: Dict[Optional[str], str], default: bool) -> str:
        prefix, local = _split_name(qname)
        if prefix is None:
            uri = scope.get(None) if default else None
        else:
            uri = scope.get(prefix)
            if uri is None:
                raise self._errors.data_format(f"undeclared namespace prefix '{prefix}' in '{qname}'")
        return f"{{{uri}}}{local}" if uri else local

    def looks_like_iban(self, account: str) -> bool:
        return looks_like_iban(account, self.settings)

    def collect_transactions(self) -> List[Transaction]:
        transactions: List[Transaction] = []
        current: Optional[dict] = None
        for view in self.iter_tags():
            suffix = statement_path(view.path)
            if suffix is None:
                continue
            if suffix == "/Stmt/Ntry":
                if current is not None:
                    transactions.append(Transaction(**current))
                current = {}
            elif current is None:
                continue
            elif suffix == "/Stmt/Ntry/Amt":
                amount = parse_decimal(view.text)
                if amount is not None:
                    current["amount"] = amount
                else:
                    logger.warning("Skipping unreadable entry amount '%s'", view.text)
                currency = view.get_attr("Ccy")
                if currency is not None:
                    current["currency"] = currency
            elif suffix == "/Stmt/Ntry/CdtDbtInd":
                current["operation_type"] = DebitOrCredit.from_camt_code(view.text)
            elif suffix == "/Stmt/Ntry/ValDt/Dt":
                value_date = parse_date(view.text)
                if value_date is not None:
                    current["date"] = value_date
                else:
                    logger.warning("Skipping unreadable value date '%s'", view.text)
        if current is not None:
            transactions.append(Transaction(**current))
        logger.debug("Collected %d CAMT.053 transactions", len(transactions))
        return transactions


def looks_like_iban(account: str, settings: Optional[Settings] = None) -> bool:
    """An account id is written as an IBAN when its stripped length is in range."""
    settings = settings or get_settings()
    compact = "".join(account.split())
    return settings.iban_min_length <= len(compact) <= settings.iban_max_length
