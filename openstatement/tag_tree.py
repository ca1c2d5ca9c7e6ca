"""
Ordered, attributed, labeled tree used to hold a parsed XML document.

Nodes live in a flat arena and refer to each other by index, so parent links
never own anything. Index 0 is always a synthetic container with an empty name;
the real document root is its first child.
"""

from dataclasses import dataclass, field
from typing import Iterable, Iterator, List, Optional, Tuple

from openstatement.exceptions import ErrorFactory

CONTAINER = 0

Attribute = Tuple[str, str]


@dataclass
class Tag:
    """
    A single node of the tree.

    Attributes:
        name (str): Element name as written, prefix included.
        text (Optional[str]): Text content, None when the element has none.
        attributes (List[Tuple[str, str]]): Attributes in document order.
        children (List[int]): Arena indices of the child nodes.
        parent (Optional[int]): Arena index of the parent, None for the container.
    """

    name: str
    text: Optional[str] = None
    attributes: List[Attribute] = field(default_factory=list)
    children: List[int] = field(default_factory=list)
    parent: Optional[int] = None

    def get_attr(self, key: str) -> Optional[str]:
        for k, v in self.attributes:
            if k == key:
                return v
        return None


class TagTree:
    """Arena of `Tag` nodes rooted in the synthetic container."""

    def __init__(self):
        self.nodes: List[Tag] = [Tag(name="")]

    def __len__(self) -> int:
        return len(self.nodes)

    def __getitem__(self, index: int) -> Tag:
        return self.nodes[index]

    def add(
        self,
        name: str,
        text: Optional[str] = None,
        attributes: Iterable[Attribute] = (),
        parent: int = CONTAINER,
    ) -> int:
        """Appends a node under `parent` and returns its index."""
        index = len(self.nodes)
        self.nodes.append(Tag(name=name, text=text, attributes=list(attributes), parent=parent))
        self.nodes[parent].children.append(index)
        return index

    @property
    def root(self) -> Optional[int]:
        """Index of the logical root, None for an empty tree."""
        children = self.nodes[CONTAINER].children
        return children[0] if children else None

    def iter_tags(self) -> "TagIterator":
        return TagIterator(self)


class TagView:
    """Read-only handle on a visited node and the path that led to it."""

    __slots__ = ("_tag", "path", "index")

    def __init__(self, tag: Tag, path: str, index: int):
        self._tag = tag
        self.path = path
        self.index = index

    @property
    def name(self) -> str:
        return self._tag.name

    @property
    def text(self) -> str:
        return self._tag.text if self._tag.text is not None else ""

    def get_attr(self, key: str) -> Optional[str]:
        return self._tag.get_attr(key)

    def __repr__(self) -> str:
        return f"TagView({self.path!r}, {self.text!r})"


class TagIterator:
    """
    Lazy pre-order walk from the logical root.

    The walk keeps a stack of ``[node, next child position]`` frames and the
    names of the nodes on the stack, from which each path is joined. A new
    iterator must be built to walk the tree again.
    """

    def __init__(self, tree: TagTree):
        self._tree = tree
        self._stack: List[List[int]] = []
        self._names: List[str] = []
        self._started = False

    def __iter__(self) -> Iterator[TagView]:
        return self

    def _enter(self, index: int) -> TagView:
        tag = self._tree[index]
        self._stack.append([index, 0])
        self._names.append(tag.name)
        return TagView(tag, "/" + "/".join(self._names), index)

    def __next__(self) -> TagView:
        if not self._started:
            self._started = True
            root = self._tree.root
            if root is None:
                raise StopIteration
            return self._enter(root)

        while self._stack:
            frame = self._stack[-1]
            children = self._tree[frame[0]].children
            if frame[1] < len(children):
                child = children[frame[1]]
                frame[1] += 1
                return self._enter(child)
            self._stack.pop()
            self._names.pop()
        raise StopIteration


class TagTreeBuilder:
    """
    Builds a `TagTree` from a sequence of parser events.

    The target interface matches what lxml feeds a parser target: ``start``,
    ``data``, ``end``, ``comment`` and ``close``. `event` dispatches by name
    and rejects anything else.
    """

    def __init__(self, errors: Optional[ErrorFactory] = None):
        self._errors = errors or ErrorFactory("Tag tree error")
        self.tree = TagTree()
        self._current = CONTAINER

    def start(self, name: str, attributes: Iterable[Attribute] = ()) -> int:
        self._current = self.tree.add(name, attributes=attributes, parent=self._current)
        return self._current

    def data(self, text: str) -> None:
        if self._current == CONTAINER:
            raise self._errors.data_format(f"no enclosing tag for text '{text}'")
        self.tree[self._current].text = text

    def end(self, name: str) -> None:
        tag = self.tree[self._current]
        if self._current == CONTAINER or tag.name != name:
            raise self._errors.data_format(
                f"found closing tag '{name}' but expected '{tag.name}'"
            )
        if tag.parent is None:
            raise self._errors.unknown("tag tree lost its parent link")
        self._current = tag.parent

    def comment(self, text: str) -> None:
        pass

    def event(self, kind: str, *args) -> None:
        handler = {
            "start": self.start,
            "data": self.data,
            "end": self.end,
            "comment": self.comment,
        }.get(kind)
        if handler is None:
            raise self._errors.read_write(
                f"unsupported event '{kind}': only elements, text and comments are accepted"
            )
        handler(*args)

    def close(self) -> TagTree:
        if self.tree.root is None:
            raise self._errors.data_format("no tags found")
        if self._current != CONTAINER:
            raise self._errors.data_format(
                f"tag '{self.tree[self._current].name}' is never closed"
            )
        return self.tree
