"""DOM structure reduction and fingerprinting for scraped pages."""

from __future__ import annotations

import json
from typing import Any

from bs4 import BeautifulSoup, Tag

from core.ids import structure_hash

# Nodes whose presence or content changes between requests without the
# layout changing
VOLATILE_TAGS = ["script", "noscript", "style", "link", "meta"]


def parse_html(html: str | bytes) -> BeautifulSoup:
    return BeautifulSoup(html, "lxml")


def strip_volatile(soup: BeautifulSoup) -> BeautifulSoup:
    """Remove volatile nodes in place and return the soup."""
    for tag in soup.find_all(VOLATILE_TAGS):
        tag.decompose()
    return soup


def reduce_element(tag: Tag) -> dict[str, Any]:
    """Reduce an element to its shape: tag, classes, id and child layout."""
    children = [child for child in tag.children if isinstance(child, Tag)]
    return {
        "tag": tag.name,
        "classes": sorted(tag.get("class") or []),
        "id": tag.get("id"),
        "child_count": len(children),
        "child_types": [child.name for child in children],
        "children": [reduce_element(child) for child in children],
    }


def reduce_structure(html: str | bytes) -> dict[str, Any]:
    """Reduced tree of the page body (or whole document without a body)."""
    soup = strip_volatile(parse_html(html))
    root = soup.body or soup.find()
    if root is None:
        return {}
    return reduce_element(root)


def structural_fingerprint(html: str | bytes) -> str:
    """Stable SHA-256 of the reduced DOM structure.

    Text, attribute values other than class/id, and volatile nodes do not
    affect the result.
    """
    reduced = reduce_structure(html)
    serialized = json.dumps(reduced, sort_keys=True, separators=(",", ":"))
    return structure_hash(serialized)


def count_matches(soup: BeautifulSoup, selector: str) -> int:
    return len(soup.select(selector))


def count_scoped_matches(soup: BeautifulSoup, scope: str, selector: str) -> int:
    """Number of ``scope`` elements holding at least one ``selector`` match."""
    return sum(1 for item in soup.select(scope) if item.select_one(selector) is not None)
