"""XML response bodies as plain dicts.

The body is streamed through an expat parser into ``_DictBuilder``, which
assembles the dict directly instead of building an ElementTree first. The
result has the same shape JSON bodies decode to, so one pydantic model can
validate either.

Shape:
    <Feed xmlns="urn:x" kind="news">       {"Feed": {"@kind": "news",
      <Entry>a</Entry>                               "Entry": ["a", "b"],
      <Entry>b</Entry>                               "Next": None}}
      <Next/>
    </Feed>
"""

from __future__ import annotations

import xml.etree.ElementTree as ET
from typing import Any


def xml_to_dict(
    body: bytes,
    force_list: set[str] | None = None,
    encoding: str | None = None,
) -> dict[str, Any]:
    """Parse an XML body into ``{root_tag: value}``.

    Args:
        body: Raw response bytes.
        force_list: Tags always decoded as lists, even when they occur once.
        encoding: Charset from the response's Content-Type. When given it
            wins over the document's own XML declaration; when None (or an
            unknown label) the parser reads the declaration, defaulting to
            UTF-8.

    Raises:
        ET.ParseError: If the body is not well-formed XML.
    """
    builder = _DictBuilder(force_list or set())
    parser = ET.XMLParser(target=builder)
    parser.feed(_as_text(body, encoding))
    return parser.close()


def _as_text(body: bytes, encoding: str | None) -> bytes | str:
    if not encoding:
        return body
    try:
        return body.decode(encoding, errors="replace")
    except LookupError:
        return body


def _local_name(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


class _Node:
    __slots__ = ("name", "fields", "text")

    def __init__(self, name: str, attrib: dict[str, str]) -> None:
        self.name = name
        # Namespaced attributes (xsi:type etc.) arrive as {uri}name and are dropped
        self.fields: dict[str, Any] = {
            f"@{key}": value for key, value in attrib.items() if not key.startswith("{")
        }
        self.text: list[str] = []


class _DictBuilder:
    """Parser target: start/data/end callbacks build the dict bottom-up.

    Repeated child tags collect into lists as they arrive; a tag seen once
    stays a scalar unless listed in ``force_list``. Text inside an element
    (all of it, including text between children) is joined and stripped.
    """

    def __init__(self, force_list: set[str]) -> None:
        self._force_list = force_list
        self._stack: list[_Node] = []
        self._children: list[dict[str, list[Any]]] = []
        self._result: dict[str, Any] = {}

    def start(self, tag: str, attrib: dict[str, str]) -> None:
        self._stack.append(_Node(_local_name(tag), attrib))
        self._children.append({})

    def data(self, text: str) -> None:
        self._stack[-1].text.append(text)

    def end(self, tag: str) -> None:
        node = self._stack.pop()
        value = self._finish(node, self._children.pop())
        if self._stack:
            self._children[-1].setdefault(node.name, []).append(value)
        else:
            self._result = {node.name: value}

    def close(self) -> dict[str, Any]:
        return self._result

    def _finish(self, node: _Node, children: dict[str, list[Any]]) -> Any:
        fields = node.fields
        for name, values in children.items():
            fields[name] = values if len(values) > 1 or name in self._force_list else values[0]

        text = "".join(node.text).strip()
        if not fields:
            return text or None
        if text:
            fields["#text"] = text
        return fields
