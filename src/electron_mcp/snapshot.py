"""
Snapshot engine.

The page script only serializes the body subtree into plain nodes; deciding
which nodes are interesting, minting refs and building selectors happens here
so the rules stay in one place and can be exercised without a browser.

Selectors are best effort: ``#id`` when the node has an id, otherwise the tag
with its classes plus the first discriminating attribute (name, type,
placeholder, aria-label), otherwise the bare tag. They are not guaranteed to be
unique; interaction handlers act on the first match.
"""

import json
import logging
import re
from typing import TYPE_CHECKING, Any, Dict, Iterator, List, Mapping, Optional, Tuple

from .models import SnapshotElement
from .refs import RefMap

if TYPE_CHECKING:
    from .session import AutomationSession

logger = logging.getLogger(__name__)

MAX_NAME_CHARS = 100
INCLUDED_TAGS = frozenset(
    {
        "button",
        "input",
        "select",
        "textarea",
        "a",
        "h1",
        "h2",
        "h3",
        "h4",
        "h5",
        "h6",
        "label",
        "option",
    }
)
CLICKABLE_TAGS = frozenset({"button", "a", "input", "select", "textarea"})
DISCRIMINATING_ATTRIBUTES = ("name", "type", "placeholder", "aria-label")

# Serializes document.body into {tag, id, classes, attrs, text, type, value, children}.
DOM_TREE_SCRIPT = """
() => {
    const ATTRS = ['name', 'type', 'placeholder', 'aria-label', 'role', 'onclick'];
    const walk = (el) => {
        const attrs = {};
        for (const name of ATTRS) {
            const value = el.getAttribute(name);
            if (value !== null) attrs[name] = value;
        }
        const cls = el.getAttribute('class') || '';
        return {
            tag: el.tagName.toLowerCase(),
            id: el.id || '',
            classes: cls.split(/\\s+/).filter((c) => c),
            attrs: attrs,
            text: (el.textContent || '').trim().substring(0, MAX_NAME_CHARS),
            type: typeof el.type === 'string' ? el.type : '',
            value: typeof el.value === 'string' ? el.value : '',
            children: Array.from(el.children).map(walk),
        };
    };
    return document.body ? walk(document.body) : null;
}
""".replace("MAX_NAME_CHARS", str(MAX_NAME_CHARS))

_CSS_IDENT = re.compile(r"^-?[_a-zA-Z][_a-zA-Z0-9-]*$")


def css_escape(ident: str) -> str:
    if _CSS_IDENT.match(ident):
        return ident
    out = []
    for i, ch in enumerate(ident):
        if ch.isalnum() and ch.isascii() and not (i == 0 and ch.isdigit()):
            out.append(ch)
        elif ch in "_-" or not ch.isascii():
            out.append(ch)
        else:
            out.append(f"\\{ord(ch):x} ")
    return "".join(out)


def _quote_attr(value: str) -> str:
    return '"' + value.replace("\\", "\\\\").replace('"', '\\"') + '"'


def build_selector(
    tag: str,
    element_id: str = "",
    classes: Optional[List[str]] = None,
    attrs: Optional[Mapping[str, str]] = None,
) -> str:
    if element_id:
        return f"#{css_escape(element_id)}"
    selector = tag
    for cls in classes or []:
        selector += f".{css_escape(cls)}"
    attrs = attrs or {}
    for name in DISCRIMINATING_ATTRIBUTES:
        value = attrs.get(name)
        if value:
            selector += f"[{name}={_quote_attr(value)}]"
            break
    return selector


def is_clickable(tag: str, attrs: Mapping[str, str]) -> bool:
    return (
        tag in CLICKABLE_TAGS
        or "onclick" in attrs
        or attrs.get("role") == "button"
    )


def is_included(tag: str, text: str) -> bool:
    return bool(text) or tag in INCLUDED_TAGS


def _walk(root: Dict[str, Any]) -> Iterator[Tuple[Dict[str, Any], int]]:
    # Pre-order over the descendants of root; root itself sits at depth 0.
    children = root.get("children") or []
    stack = [(child, 1) for child in reversed(children)]
    while stack:
        current, level = stack.pop()
        yield current, level
        children = current.get("children") or []
        stack.extend((child, level + 1) for child in reversed(children))


def collect_elements(root: Optional[Dict[str, Any]], refs: RefMap) -> List[SnapshotElement]:
    """Walk a serialized body in document order, minting a ref per included node.

    The body is the traversal root and never an element of its own: its text
    is the whole page. Excluded nodes are still descended into.
    """
    if not root:
        return []
    elements: List[SnapshotElement] = []
    for node, depth in _walk(root):
        tag = node.get("tag", "")
        text = (node.get("text") or "").strip()[:MAX_NAME_CHARS]
        if not is_included(tag, text):
            continue
        attrs: Dict[str, str] = node.get("attrs") or {}
        element_id = node.get("id") or ""
        classes = node.get("classes") or []
        control_type = node.get("type") or None
        attributes = {
            "id": element_id,
            "className": " ".join(classes),
            "name": attrs.get("name", ""),
            "placeholder": attrs.get("placeholder", ""),
        }
        elements.append(
            SnapshotElement(
                ref=refs.mint(),
                role=attrs.get("role") or control_type or tag,
                name=text,
                tag=tag,
                depth=depth,
                clickable=is_clickable(tag, attrs),
                type=control_type,
                value=node.get("value") or None,
                selector=build_selector(tag, element_id, classes, attrs),
                attributes={k: v for k, v in attributes.items() if v},
            )
        )
    return elements


def format_snapshot(url: str, title: str, elements: List[SnapshotElement]) -> str:
    lines = [
        "page:",
        f"  url: {url}",
        f"  title: {title}",
        "  elements:",
    ]
    for element in elements:
        indent = "  " * (element.depth + 2)
        lines.append(f"{indent}- ref: {element.ref}")
        lines.append(f"{indent}  role: {element.role}")
        lines.append(f"{indent}  name: {json.dumps(element.name, ensure_ascii=False)}")
        lines.append(f"{indent}  tag: {element.tag}")
        if element.clickable:
            lines.append(f"{indent}  clickable: true")
        if element.type:
            lines.append(f"{indent}  type: {element.type}")
        if element.value:
            lines.append(f"{indent}  value: {json.dumps(element.value, ensure_ascii=False)}")
    report = "\n".join(lines) + "\n"
    return f"Page snapshot captured with {len(elements)} elements:\n\n{report}"


async def take_snapshot(session: "AutomationSession") -> Tuple[List[SnapshotElement], str]:
    page = session.require_page()

    # Old refs die before the page is read, even if reading fails.
    session.refs.reset()

    root = await page.evaluate(DOM_TREE_SCRIPT)
    elements = collect_elements(root, session.refs)
    session.refs.replace({element.ref: element.selector for element in elements})

    title = await page.title()
    logger.debug("Snapshot of %s captured %d elements", page.url, len(elements))
    return elements, format_snapshot(page.url, title, elements)

