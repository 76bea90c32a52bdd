"""
Text helpers shared by the catalog crawler.

- clean_text: decode character references, drop tags, collapse whitespace
- parse_course_text / extract_course_id: recognize "CS 6601 Artificial Intelligence"
- ListItems: walk the <li> elements of an HTML fragment

Examples:
    "CS 6601 Artificial Intelligence"  -> CS-6601, "Artificial Intelligence"
    "CS 8803 O08: Compilers"           -> CS-8803-O08, "Compilers"
"""

import re
from dataclasses import dataclass, field
from typing import Iterator, List, Optional, Union
from urllib.parse import urljoin

from bs4 import BeautifulSoup, Comment, Tag

from catalog_config import BASE_URL, FOUNDATIONAL_MARKER, SPECIAL_TOPICS_NUMBERS

# Subject (2-4 capitals), 4 digit number, optional section code like O08
COURSE_PATTERN = re.compile(
    r"\b(?P<subject>[A-Z]{2,4})\s*(?P<number>\d{4})"
    r"(?:\s*(?P<section>[A-Z]\d{2}))?(?![A-Za-z0-9])"
)
TITLE_PATTERN = re.compile(r"^[:\s]+(?P<title>.+)$", re.DOTALL)
# "<b>", "</a>", "<br/>"; a bare "<" in prose ("grade < B") is not a tag
TAG_PATTERN = re.compile(r"</?[A-Za-z][^<>]*>")
NUMERIC_ENTITY_PATTERN = re.compile(r"&#(x[0-9a-fA-F]+|\d+);")

NAMED_ENTITIES = {
    "&nbsp;": " ",
    "&lt;": "<",
    "&gt;": ">",
    "&quot;": '"',
    "&apos;": "'",
    "&ndash;": "–",
    "&mdash;": "—",
    "&rsquo;": "’",
    "&lsquo;": "‘",
    "&rdquo;": "”",
    "&ldquo;": "“",
    "&amp;": "&",
}


@dataclass
class Course:
    course_id: str
    name: str
    department_id: str
    course_number: str
    url: Optional[str] = None
    is_foundational: bool = False
    aliases: List[str] = field(default_factory=list)
    is_deprecated: bool = False

    def to_dict(self) -> dict:
        return {
            "courseId": self.course_id,
            "name": self.name,
            "departmentId": self.department_id,
            "courseNumber": self.course_number,
            "url": self.url,
            "isFoundational": self.is_foundational,
            "aliases": list(self.aliases),
            "isDeprecated": self.is_deprecated,
        }


def _decode_numeric(match):
    ref = match.group(1)
    try:
        code = int(ref[1:], 16) if ref[0] in "xX" else int(ref)
        return chr(code)
    except (ValueError, OverflowError):
        return match.group(0)


def clean_text(text: Optional[str]) -> str:
    """
    Normalize a piece of catalog text.

    The known character references are decoded, tags are removed and any
    run of whitespace (newlines and &nbsp; included) becomes one space.
    Unknown references such as "&foo;" are left alone.

    Decoding can uncover more markup ("&lt;b&gt;" -> "<b>") or references
    ("&amp;lt;" -> "&lt;"), so the steps repeat until the text is stable.
    Cleaning an already clean string returns it unchanged.
    """
    if not text:
        return ""
    cleaned = _clean_once(text)
    while cleaned != text:
        text, cleaned = cleaned, _clean_once(cleaned)
    return cleaned


def _clean_once(text: str) -> str:
    text = NUMERIC_ENTITY_PATTERN.sub(_decode_numeric, text)
    for entity, char in NAMED_ENTITIES.items():
        text = text.replace(entity, char)
    text = TAG_PATTERN.sub("", text)
    return re.sub(r"\s+", " ", text).strip()


def dedupe(items):
    """Drop repeats, keeping the first occurrence order."""
    seen = set()
    result = []
    for item in items:
        if item not in seen:
            seen.add(item)
            result.append(item)
    return result


def course_identity(subject: str, number: str, section: Optional[str]) -> tuple:
    """Return (course_id, course_number) for a matched mention."""
    if section and number in SPECIAL_TOPICS_NUMBERS:
        return f"{subject}-{number}-{section}", f"{number}-{section}"
    return f"{subject}-{number}", number


def extract_course_id(text: str) -> Optional[str]:
    """
    Find the course a piece of text refers to.

    Args:
        text: Normalized text, e.g. "CS 6515 Introduction to Graduate Algorithms"

    Returns:
        The identifier ("CS-6515"), or None when no course is mentioned
    """
    match = COURSE_PATTERN.search(text or "")
    if not match:
        return None
    course_id, _ = course_identity(
        match.group("subject"), match.group("number"), match.group("section")
    )
    return course_id


def parse_course_text(
    text: str, url: Optional[str] = None, is_foundational: bool = False
) -> Optional[Course]:
    """
    Parse a full course line such as "CS 8803 O08: Compilers".

    The foundational marker may appear anywhere in the text; it sets
    is_foundational and is removed before the title is read. A mention
    with nothing after the number is not a course definition.
    """
    text = text or ""
    if FOUNDATIONAL_MARKER in text:
        is_foundational = True
        text = text.replace(FOUNDATIONAL_MARKER, "")
    text = clean_text(text)

    match = COURSE_PATTERN.search(text)
    if not match:
        return None
    title_match = TITLE_PATTERN.match(text[match.end():])
    if not title_match:
        return None

    subject = match.group("subject")
    course_id, course_number = course_identity(
        subject, match.group("number"), match.group("section")
    )
    return Course(
        course_id=course_id,
        name=title_match.group("title").strip(),
        department_id=subject,
        course_number=course_number,
        url=url,
        is_foundational=is_foundational,
    )


def parse_course_item(item_html: str) -> Optional[Course]:
    """Parse one <li> from the current-courses page into a Course."""
    soup = BeautifulSoup(item_html, "html.parser")
    is_foundational = FOUNDATIONAL_MARKER in soup.get_text()

    link = soup.find("a", href=True)
    if not link:
        return parse_course_text(soup.get_text(), None, is_foundational)

    url = urljoin(BASE_URL + "/", link["href"])
    course = parse_course_text(link.get_text(), url, is_foundational)
    if course is None:
        # Title sometimes sits outside the anchor: <a>CS 6601</a> Artificial Intelligence
        course = parse_course_text(soup.get_text(), url, is_foundational)
    return course


@dataclass
class ListItem:
    html: str
    text: str
    course_id: Optional[str]


def _own_text(li: Tag) -> str:
    # Text of nested lists belongs to their own items
    parts = []
    for piece in li.find_all(string=True):
        if isinstance(piece, Comment):
            continue
        if piece.find_parent("li") is li:
            parts.append(str(piece))
    return "".join(parts)


class ListItems:
    """
    The <li> elements of a fragment, in document order.

    Iterating parses the fragment again each time, so the same object can
    be walked more than once.
    """

    def __init__(self, fragment: Union[str, Tag, None]):
        self.fragment = fragment

    def __iter__(self) -> Iterator[ListItem]:
        if self.fragment is None:
            return
        if isinstance(self.fragment, Tag):
            root = self.fragment
        else:
            root = BeautifulSoup(self.fragment, "html.parser")
        for li in root.find_all("li"):
            text = clean_text(_own_text(li))
            yield ListItem(html=str(li), text=text, course_id=extract_course_id(text))

    def course_ids(self, skip_keywords=()) -> List[str]:
        """Course identifiers of the items, deduplicated."""
        ids = []
        for item in self:
            lowered = item.text.lower()
            if any(keyword in lowered for keyword in skip_keywords):
                continue
            if item.course_id:
                ids.append(item.course_id)
        return dedupe(ids)
