from __future__ import annotations

import re

from bs4 import BeautifulSoup

_WS_RE = re.compile(r"\s+")


def html_to_text(markup: str | None) -> str:
    """
    Flatten a description's markup into one line of plain text.
    Tags become spaces so list items and paragraphs don't run together;
    entities are decoded by the parser.
    """
    if not markup or not markup.strip():
        return ""
    soup = BeautifulSoup(markup, "html.parser")
    for tag in soup(["script", "style"]):
        tag.decompose()
    text = soup.get_text(" ")
    return _WS_RE.sub(" ", text).strip()
