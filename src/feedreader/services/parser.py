"""Tolerant RSS 2.0 / Atom parsing into :class:`~feedreader.models.ParsedFeed`."""

from __future__ import annotations

import re
from datetime import UTC, datetime
from typing import Iterable, List

from bs4 import BeautifulSoup, ParserRejectedMarkup, Tag
from dateutil import parser as date_parser

from feedreader.errors import ParseError
from feedreader.models import FeedItem, ParsedFeed

__all__ = [
    "ATOM_NAMESPACE",
    "MAX_EXCERPT_LENGTH",
    "clean_html",
    "find_children",
    "is_atom",
    "parse_date",
    "parse_feed",
    "tag_text",
]

ATOM_NAMESPACE = "http://www.w3.org/2005/Atom"

#: Hard cap applied by :func:`clean_html`; longer text is cut, not ellipsised.
MAX_EXCERPT_LENGTH = 500

# Abbreviations commonly found in RFC 822 dates that dateutil does not know.
TZINFOS = {
    "EST": -5 * 3600,
    "EDT": -4 * 3600,
    "CST": -6 * 3600,
    "CDT": -5 * 3600,
    "MST": -7 * 3600,
    "MDT": -6 * 3600,
    "PST": -8 * 3600,
    "PDT": -7 * 3600,
    "GMT": 0,
    "UTC": 0,
    "Z": 0,
}

_WHITESPACE_RE = re.compile(r"\s+")
_MARKUP_RE = re.compile(r"<[A-Za-z/!]")


def _qualified_name(tag: Tag) -> str:
    name = tag.name or ""
    if tag.prefix and ":" not in name:
        name = f"{tag.prefix}:{name}"
    return name.lower()


def find_children(parent: Tag, *names: str) -> List[Tag]:
    """Return direct children of ``parent`` whose tag name is one of ``names``.

    Names are compared case-insensitively and may carry a namespace prefix
    (``content:encoded``).  Only direct children are inspected so a feed-level
    ``title`` is never confused with an item-level one.
    """

    wanted = {name.lower() for name in names}
    # Undeclared prefixes are dropped by the recovering parser.
    bare = {name.split(":", 1)[1] for name in wanted if ":" in name}
    return [
        child
        for child in parent.find_all(True, recursive=False)
        if _qualified_name(child) in wanted
        or (not child.prefix and (child.name or "").lower() in bare)
    ]


def tag_text(parent: Tag | None, *names: str) -> str:
    """Return the stripped text of the first non-empty child among ``names``.

    Names are tried in order, so ``tag_text(item, "content:encoded", "content")``
    prefers the first.  CDATA sections are read like ordinary text.  Missing
    tags yield ``""``.
    """

    if parent is None:
        return ""
    for name in names:
        for child in find_children(parent, name):
            text = child.get_text().strip()
            if text:
                return text
    return ""


def clean_html(text: str | None, max_length: int = MAX_EXCERPT_LENGTH) -> str:
    """Reduce an HTML fragment to a single line of plain text.

    Entities are decoded, markup removed, whitespace collapsed, and the result
    cut to ``max_length`` characters.
    """

    if not text:
        return ""

    plain = BeautifulSoup(text, "html.parser").get_text()
    # Escaped markup (``&lt;p&gt;``) only becomes tags after the first decode.
    if _MARKUP_RE.search(plain):
        plain = BeautifulSoup(plain, "html.parser").get_text()

    plain = _WHITESPACE_RE.sub(" ", plain.replace("\xa0", " ")).strip()
    return plain[:max_length]


def parse_date(value: str | None, now: datetime | None = None) -> datetime:
    """Parse a feed date into an aware UTC :class:`datetime`.

    Missing or unparsable values fall back to ``now`` (the current instant by
    default) instead of raising.
    """

    fallback = now or datetime.now(UTC)
    if not value or not value.strip():
        return fallback

    try:
        parsed = date_parser.parse(value.strip(), tzinfos=TZINFOS)
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=UTC)
        # Offsets near datetime.min/max overflow on conversion.
        return parsed.astimezone(UTC)
    except (ValueError, OverflowError):
        return fallback


def is_atom(root: Tag) -> bool:
    """Return ``True`` when ``root`` is an Atom ``<feed>`` element."""

    return (root.name or "").lower() == "feed" and root.namespace == ATOM_NAMESPACE


def _atom_link(entry: Tag) -> str:
    links = [link for link in find_children(entry, "link") if (link.get("href") or "").strip()]
    for link in links:
        rel = (link.get("rel") or "alternate").strip().lower()
        if rel == "alternate":
            return link["href"].strip()
    if links:
        return links[0]["href"].strip()
    return ""


def _rss_link(item: Tag) -> str:
    link = tag_text(item, "link")
    if link:
        return link
    guid = tag_text(item, "guid")
    if guid.startswith(("http://", "https://")):
        return guid
    return ""


def _atom_items(root: Tag) -> Iterable[FeedItem]:
    for entry in find_children(root, "entry"):
        yield FeedItem(
            title=tag_text(entry, "title"),
            description=tag_text(entry, "summary"),
            content=tag_text(entry, "content"),
            link=_atom_link(entry),
            pub_date=tag_text(entry, "published", "updated"),
        )


def _rss_items(soup: BeautifulSoup) -> Iterable[FeedItem]:
    # Items are looked up anywhere in the document: RSS 1.0 places them beside
    # the channel rather than inside it.
    for item in soup.find_all(lambda tag: (tag.name or "").lower() == "item"):
        yield FeedItem(
            title=tag_text(item, "title"),
            description=tag_text(item, "description"),
            content=tag_text(item, "content:encoded", "content"),
            link=_rss_link(item),
            pub_date=tag_text(item, "pubDate", "dc:date"),
        )


def parse_feed(raw: bytes | str) -> ParsedFeed:
    """Parse an RSS 2.0 or Atom document.

    Malformed markup is recovered where possible and missing fields become
    empty strings.  A document with no recognisable items yields an empty item
    list.  :class:`~feedreader.errors.ParseError` is raised only when the body
    holds no XML element at all.
    """

    try:
        soup = BeautifulSoup(raw or b"", "xml")
    except ParserRejectedMarkup as exc:
        raise ParseError(f"Response is not a readable XML document: {exc}") from exc

    root = soup.find(True)
    if root is None:
        raise ParseError("Response does not contain an RSS or Atom document")

    if is_atom(root):
        return ParsedFeed(title=tag_text(root, "title"), items=list(_atom_items(root)))

    channel = soup.find(lambda tag: (tag.name or "").lower() == "channel")
    return ParsedFeed(title=tag_text(channel, "title"), items=list(_rss_items(soup)))
