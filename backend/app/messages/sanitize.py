"""Reduce user supplied message text to inert plain text.

Tags are dropped and the text content between them is kept. Content of
``<script>``, ``<style>``, ``<textarea>`` and ``<option>`` elements is
dropped along with the tags. The remaining text is HTML-escaped, so a stored
message never contains a ``<``, even when the input smuggled markup in as
character references.
"""
import html
from html.parser import HTMLParser
from typing import List

_DROP_CONTENT_TAGS = {"script", "style", "textarea", "option"}


class _TextExtractor(HTMLParser):
    def __init__(self) -> None:
        super().__init__(convert_charrefs=True)
        self._parts: List[str] = []
        self._skip_depth = 0

    def handle_starttag(self, tag, attrs):
        if tag in _DROP_CONTENT_TAGS:
            self._skip_depth += 1

    def handle_endtag(self, tag):
        if tag in _DROP_CONTENT_TAGS and self._skip_depth:
            self._skip_depth -= 1

    def handle_data(self, data):
        if not self._skip_depth:
            self._parts.append(data)

    def text(self) -> str:
        return "".join(self._parts)


def strip_markup(text: str, max_length: int = 5000) -> str:
    """Return *text* without markup, escaped, trimmed and capped at *max_length*.

    Non-string input yields an empty string.
    """
    if not text or not isinstance(text, str):
        return ""
    parser = _TextExtractor()
    parser.feed(text)
    parser.close()
    return html.escape(parser.text().strip(), quote=False)[:max_length]
