"""
tree_utils.py — типизированное дерево документа GGE и обход по нему.

Узел дерева — либо Leaf (текстовое значение), либо Composite (упорядоченные
дочерние узлы по имени; имя может повторяться).
XML → дерево строится по правилам xml2js (explicitArray=false, mergeAttrs, trim):
  - атрибуты становятся дочерними Leaf-узлами
  - элемент без детей и атрибутов → Leaf с обрезанным текстом
  - текст элемента, у которого есть дети, хранится под ключом "_"
"""
import codecs
import logging
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator, Union

logger = logging.getLogger(__name__)

TEXT_KEY = "_"

# Кодировки, в которых встречаются выгрузки .gge без XML-декларации
_ENCODINGS = ("utf-8", "cp1251")


@dataclass(frozen=True)
class Leaf:
    text: str = ""


@dataclass
class Composite:
    children: list[tuple[str, "Node"]] = field(default_factory=list)

    def add(self, name: str, node: "Node") -> None:
        self.children.append((name, node))

    def names(self) -> list[str]:
        """Имена детей в порядке первого появления (без повторов)."""
        seen: dict[str, None] = {}
        for name, _ in self.children:
            seen[name] = None
        return list(seen)

    def get_all(self, name: str) -> list["Node"]:
        return [node for key, node in self.children if key == name]

    def get(self, name: str) -> "Node | None":
        for key, node in self.children:
            if key == name:
                return node
        return None

    def text(self, name: str, default: str = "") -> str:
        """Текст дочернего листа; для составного узла — его "_" текст."""
        node = self.get(name)
        if isinstance(node, Leaf):
            return node.text
        if isinstance(node, Composite):
            return node.text(TEXT_KEY, default)
        return default

    def path(self, *names: str) -> "Node | None":
        """Спуск по цепочке имён: tree.path("Material", "Code")."""
        node: Node | None = self
        for name in names:
            if not isinstance(node, Composite):
                return None
            node = node.get(name)
        return node

    def path_text(self, *names: str, default: str = "") -> str:
        node = self.path(*names)
        if isinstance(node, Leaf):
            return node.text
        if isinstance(node, Composite):
            return node.text(TEXT_KEY, default)
        return default


Node = Union[Leaf, Composite]


# ─── Поиск ──────────────────────────────────────────────────────

def find_node(tree: Node | None, name: str) -> Node | None:
    """
    Первый узел с ключом name на любой глубине.
    На каждом уровне сначала проверяются собственные дети узла,
    затем поиск уходит вглубь составных детей в порядке документа.
    """
    if not isinstance(tree, Composite):
        return None
    direct = tree.get(name)
    if direct is not None:
        return direct
    for _, child in tree.children:
        found = find_node(child, name)
        if found is not None:
            return found
    return None


# ─── Выравнивание ────────────────────────────────────────────────

def flatten(node: Node | None, prefix: str = "") -> dict[str, str]:
    """
    Составной узел → плоский словарь с ключами, склеенными через "_".
    {"Materials": {"Total": {"PriceCurrent": "10"}}} → {"Materials_Total_PriceCurrent": "10"}
    Повторяющиеся имена получают позиционный суффикс: Item_0, Item_1.
    """
    out: dict[str, str] = {}
    if node is None:
        return out
    if isinstance(node, Leaf):
        out[prefix or TEXT_KEY] = node.text
        return out
    for key, child in _keyed_children(node):
        _flatten_into(child, _join(prefix, key), out)
    return out


def _flatten_into(node: Node, key: str, out: dict[str, str]) -> None:
    if isinstance(node, Leaf):
        out[key] = node.text
        return
    for child_key, child in _keyed_children(node):
        _flatten_into(child, _join(key, child_key), out)


def _keyed_children(node: Composite) -> Iterator[tuple[str, Node]]:
    counts: dict[str, int] = {}
    for name, _ in node.children:
        counts[name] = counts.get(name, 0) + 1
    index: dict[str, int] = {}
    for name, child in node.children:
        if counts[name] == 1:
            yield name, child
        else:
            i = index.get(name, 0)
            index[name] = i + 1
            yield f"{name}_{i}", child


def _join(prefix: str, key: str) -> str:
    return f"{prefix}_{key}" if prefix else key


# ─── XML → дерево ────────────────────────────────────────────────

def _local_name(tag: str) -> str:
    return tag.split("}")[-1]


def element_to_node(elem: ET.Element) -> Node:
    text = (elem.text or "").strip()
    children = list(elem)
    if not children and not elem.attrib:
        return Leaf(text)

    node = Composite()
    for attr, value in elem.attrib.items():
        node.add(_local_name(attr), Leaf(value.strip()))
    if text:
        node.add(TEXT_KEY, Leaf(text))
    for child in children:
        if not isinstance(child.tag, str):
            continue  # комментарии и инструкции обработки
        node.add(_local_name(child.tag), element_to_node(child))
    return node


def parse_xml(xml_str: str) -> Composite:
    """XML-строка → Composite с корневым элементом как единственным ребёнком."""
    root = ET.fromstring(xml_str)
    tree = Composite()
    tree.add(_local_name(root.tag), element_to_node(root))
    return tree


def read_tree(path: Path) -> Composite:
    """Читает .gge файл. ET.ParseError и OSError пробрасываются вызывающему."""
    data = path.read_bytes()
    if data.startswith(codecs.BOM_UTF8) or data.lstrip().startswith(b"<?xml"):
        # Кодировку объявляет сам документ
        return _parse_bytes(data)
    for enc in _ENCODINGS:
        try:
            return parse_xml(data.decode(enc))
        except UnicodeDecodeError:
            continue
    return parse_xml(data.decode("utf-8", errors="replace"))


def _parse_bytes(data: bytes) -> Composite:
    root = ET.fromstring(data)
    tree = Composite()
    tree.add(_local_name(root.tag), element_to_node(root))
    return tree
