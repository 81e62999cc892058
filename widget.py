"""HTML result widget driven by ``data-tag`` markers.

A page opts in by marking three elements:

- ``data-tag="search"``: the text input
- ``data-tag="results"``: the container results are rendered into
- ``data-tag="results-item"``: a template cloned once per result

Inside the template, ``data-tag="results-title"`` receives the item name,
``data-tag="results-link"`` links to ``/<slug>``, and any element with
``data-field="<field>"`` is bound to that field of ``fieldData``. The optional
``data-bind`` attribute picks the binding: ``text`` (default), ``href`` or
``src``.
"""

from __future__ import annotations

import copy
import json
import logging
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

from bs4 import BeautifulSoup, Tag

logger = logging.getLogger(__name__)

SEARCH_SELECTOR = '[data-tag="search"]'
RESULTS_SELECTOR = '[data-tag="results"]'
TEMPLATE_SELECTOR = '[data-tag="results-item"]'
TITLE_SELECTOR = '[data-tag="results-title"]'
LINK_SELECTOR = '[data-tag="results-link"]'


class BindingKind(Enum):
    TEXT = "text"
    HREF = "href"
    SRC = "src"

    @classmethod
    def parse(cls, value: Optional[str]) -> "BindingKind":
        if not value:
            return cls.TEXT
        try:
            return cls(value.strip().lower())
        except ValueError:
            logger.warning("Unknown data-bind %r, binding as text", value)
            return cls.TEXT


def _style_without_display(style: str) -> str:
    declarations = [part.strip() for part in style.split(";") if part.strip()]
    kept = [part for part in declarations if part.split(":", 1)[0].strip().lower() != "display"]
    return "; ".join(kept)


def _hide(tag: Tag) -> None:
    base = _style_without_display(tag.get("style", ""))
    tag["style"] = f"{base}; display: none" if base else "display: none"


def _show(tag: Tag) -> None:
    style = _style_without_display(tag.get("style", ""))
    if style:
        tag["style"] = style
    elif tag.has_attr("style"):
        del tag["style"]


def _display_value(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False)
    return str(value)


class SearchWidget:
    def __init__(self, document: BeautifulSoup, search_input: Tag, results: Tag, template: Tag):
        self.document = document
        self.search_input = search_input
        self.results = results
        self.template = template
        _hide(self.template)

    @classmethod
    def from_html(cls, html: str) -> Optional["SearchWidget"]:
        """Parse *html* and bind to its marked elements.

        Returns ``None`` (after logging a warning) when any required element
        is missing, leaving the page untouched.
        """

        document = BeautifulSoup(html, "html.parser")
        elements = {}
        for name, selector in (
            ("search", SEARCH_SELECTOR),
            ("results", RESULTS_SELECTOR),
            ("results-item", TEMPLATE_SELECTOR),
        ):
            element = document.select_one(selector)
            if element is None:
                logger.warning("Search widget: no element with data-tag='%s' found", name)
                return None
            elements[name] = element

        return cls(document, elements["search"], elements["results"], elements["results-item"])

    def attribute(self, name: str, default: Optional[str] = None) -> Optional[str]:
        value = self.search_input.get(name)
        return value if value else default

    def clear(self) -> None:
        for child in list(self.results.children):
            if isinstance(child, Tag) and child is not self.template:
                child.extract()

    def render(self, results: Iterable[Dict[str, Any]]) -> None:
        self.clear()
        for result in results:
            self.results.append(self._render_item(result))

    def _render_item(self, result: Dict[str, Any]) -> Tag:
        item = copy.copy(self.template)
        _show(item)
        del item["data-tag"]

        name = result.get("name") or ""
        title = item.select_one(TITLE_SELECTOR)
        if title is not None:
            title.string = name

        link = item.select_one(LINK_SELECTOR)
        if link is not None:
            link["href"] = f"/{result.get('slug') or ''}"
            if title is None:
                link.string = name

        field_data = result.get("fieldData") or {}
        for element in item.select("[data-field]"):
            field_name = element.get("data-field")
            if not field_name or field_name not in field_data:
                continue
            value = _display_value(field_data[field_name])
            kind = BindingKind.parse(element.get("data-bind"))
            if kind is BindingKind.HREF:
                element["href"] = value
            elif kind is BindingKind.SRC:
                element["src"] = value
            else:
                element.string = value

        return item

    def rendered_items(self) -> List[Tag]:
        return [
            child
            for child in self.results.children
            if isinstance(child, Tag) and child is not self.template
        ]

    def to_html(self) -> str:
        return str(self.document)
