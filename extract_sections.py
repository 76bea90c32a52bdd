"""
Cut a named section out of a specialization page.

Sections on the catalog pages are only marked by headings, e.g.

    <h3>Core Courses (9 hours)</h3>
    <p>Pick one (1) of:</p>
    <ul>...</ul>
    <h3>Electives (6 hours)</h3>

so a section is everything after its heading up to the next heading of the
same kind, whatever that heading says.
"""

import logging
import re
from typing import Iterable, List, Optional, Sequence, Union

from bs4 import BeautifulSoup, Comment, NavigableString, Tag

from catalog_config import HEADING_TAGS
from catalog_text import clean_text

logger = logging.getLogger(__name__)


def heading_pattern(label: str):
    """'Core Courses' also matches 'Core Courses (9 hours)' and 'Core Courses:'."""
    return re.compile(
        rf"^{re.escape(clean_text(label))}\s*(?:\([^)]*\))?\s*:?$", re.IGNORECASE
    )


def _heading_matches(heading: Tag, labels: Iterable[str]) -> bool:
    text = clean_text(heading.get_text())
    return any(heading_pattern(label).match(text) for label in labels)


def find_heading(soup: Tag, label: str, heading_tags: Sequence[str] = HEADING_TAGS) -> Optional[Tag]:
    """First heading whose text is the label, optionally followed by a qualifier."""
    pattern = heading_pattern(label)
    for heading in soup.find_all(list(heading_tags)):
        if pattern.match(clean_text(heading.get_text())):
            return heading
    return None


def _collect(nodes, heading_tags, out: List) -> Optional[Tag]:
    """
    Append nodes to out until a heading shows up.

    Containers holding a heading are opened so the content in front of the
    heading is kept. Returns the heading that stopped the walk, if any.
    """
    for node in list(nodes):
        if isinstance(node, Comment):
            continue
        if isinstance(node, Tag):
            if node.name in heading_tags:
                return node
            if node.find(list(heading_tags)) is not None:
                stop = _collect(node.children, heading_tags, out)
                if stop is not None:
                    return stop
                continue
        out.append(node)
    return None


def _render(nodes) -> str:
    parts = []
    for node in nodes:
        if isinstance(node, Tag):
            parts.append(node.decode())
        elif isinstance(node, NavigableString):
            parts.append(node.output_ready())
    return "".join(parts)


def extract_section_content(
    html: Union[str, BeautifulSoup],
    section_name: str,
    next_section_names: Sequence[str] = (),
    heading_tags: Sequence[str] = HEADING_TAGS,
) -> Optional[str]:
    """
    Return the markup between a section heading and the end of the section.

    The section ends at the nearest of: a heading named in
    next_section_names, any other heading of heading_tags, or the end of
    the document. The first of those in document order wins.

    Args:
        html: Full page markup, or an already parsed page
        section_name: Heading label, e.g. "Core Courses"
        next_section_names: Labels of the headings expected to follow
        heading_tags: Tag names that count as section headings

    Returns:
        The fragment as markup, or None if the heading is not on the page
    """
    soup = html if isinstance(html, BeautifulSoup) else BeautifulSoup(html or "", "html.parser")
    heading = find_heading(soup, section_name, heading_tags)
    if heading is None:
        logger.debug(f"No '{section_name}' heading found")
        return None

    nodes = []
    stop = None
    node = heading
    # Walk forward from the heading, climbing out of wrappers that end early
    while node is not None and not isinstance(node, BeautifulSoup):
        stop = _collect(node.next_siblings, heading_tags, nodes)
        if stop is not None:
            break
        node = node.parent

    if stop is None:
        logger.debug(f"'{section_name}' runs to the end of the page")
    elif _heading_matches(stop, next_section_names):
        logger.debug(f"'{section_name}' ends at '{clean_text(stop.get_text())}'")
    else:
        logger.debug(
            f"'{section_name}' ends at unexpected heading '{clean_text(stop.get_text())}'"
        )

    return _render(nodes)
