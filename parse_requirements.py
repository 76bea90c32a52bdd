"""
Requirement Parser

Turns the "Core Courses" and "Electives" sections of a specialization page
into requirement groups. The pages are written by hand, so several layouts
are recognized and tried in a fixed order:

1. direct      - one list, no "pick" wording: every course is required
2. inline      - "Pick two (2) of:" right before each list
3. sequential  - lists, then "And, pick N of:" markers claiming the lists after them
4. or-joined   - <ul>...</ul><p>or</p><ul>...</ul>: one course from any list
5. flat        - everything in one group, pick count from the text if unambiguous

Example:
    <p>Pick one (1) of:</p><ul><li>CS 6515 Graduate Algorithms</li></ul>
    ->
    [{"name": "Pick 1", "pickCount": 1, "courseIds": ["CS-6515"]}]
"""

import logging
import re
from dataclasses import dataclass, field
from typing import List, Optional

from bs4 import BeautifulSoup, Comment, NavigableString, Tag

from catalog_config import (
    CORE_NEXT_SECTIONS,
    CORE_SECTION,
    ELECTIVES_NEXT_SECTIONS,
    ELECTIVES_SECTION,
    INSTRUCTION_KEYWORDS,
    PROGRAM_ID,
)
from catalog_text import ListItems, clean_text, dedupe
from extract_sections import extract_section_content

logger = logging.getLogger(__name__)

LIST_TAGS = ["ul", "ol"]

WORD_TO_NUMBER = {"one": 1, "two": 2, "three": 3, "four": 4, "five": 5}

# "two", "2", "two (2)", "(2)"
_COUNT = (
    r"(?:(?P<word>one|two|three|four|five)\b|(?P<digit>\d+)\b)?"
    r"\s*(?:\((?P<paren>\d+)\))?"
)
PICK_PATTERN = re.compile(r"\b(?:pick|take|select)\s+" + _COUNT, re.IGNORECASE)
# Only "pick N" states a group size; "take 9 hours" does not
PICK_ONLY_PATTERN = re.compile(r"\bpick\s+" + _COUNT, re.IGNORECASE)
AND_PICK_PATTERN = re.compile(r"\band\s*,?\s*pick\s+" + _COUNT, re.IGNORECASE)
OR_PATTERN = re.compile(r"^\W*or\W*$", re.IGNORECASE)


@dataclass
class RequirementGroup:
    name: str
    pick_count: int
    course_ids: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "pickCount": self.pick_count,
            "courseIds": list(self.course_ids),
        }


@dataclass
class Specialization:
    specialization_id: str
    name: str
    program_id: str
    core_courses: List[RequirementGroup] = field(default_factory=list)
    elective_course_ids: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "specializationId": self.specialization_id,
            "name": self.name,
            "programId": self.program_id,
            "coreCourses": [group.to_dict() for group in self.core_courses],
            "electiveCourseIds": list(self.elective_course_ids),
        }


def pick_count_from_match(match) -> Optional[int]:
    """
    Read the count out of one instruction phrase.

    "(2)" beats a bare "2", which beats a spelled "two".
    """
    if match is None:
        return None
    if match.group("paren"):
        count = int(match.group("paren"))
    elif match.group("digit"):
        count = int(match.group("digit"))
    elif match.group("word"):
        count = WORD_TO_NUMBER[match.group("word").lower()]
    else:
        return None
    return count if count >= 1 else None


def find_pick_counts(text: str, pattern=PICK_PATTERN) -> List[int]:
    """All counts stated by instruction phrases in text, in order."""
    counts = []
    for match in pattern.finditer(text or ""):
        count = pick_count_from_match(match)
        if count is not None:
            counts.append(count)
    return counts


def parse_pick_count(text: str) -> Optional[int]:
    """Count of the last instruction phrase in text, e.g. "Pick two (2) of:" -> 2."""
    counts = find_pick_counts(text)
    return counts[-1] if counts else None


@dataclass
class SectionLayout:
    """
    A section split into its top-level lists and the text around them.

    gaps[i] is the text in front of lists[i]; gaps[-1] is the text after
    the last list, so there is always one more gap than there are lists.
    """
    lists: List[Tag]
    gaps: List[str]

    @property
    def text(self) -> str:
        parts = []
        for gap, ul in zip(self.gaps, self.lists + [None]):
            parts.append(gap)
            if ul is not None:
                parts.append(clean_text(ul.get_text(" ")))
        return clean_text(" ".join(parts))


def split_section(fragment: str) -> SectionLayout:
    soup = BeautifulSoup(fragment or "", "html.parser")
    lists = []
    gaps = [[]]

    def walk(nodes):
        for node in nodes:
            if isinstance(node, Comment):
                continue
            if isinstance(node, Tag):
                if node.name in LIST_TAGS:
                    lists.append(node)
                    gaps.append([])
                    continue
                if node.find(LIST_TAGS) is not None:
                    walk(node.children)
                    continue
                gaps[-1].append(node.get_text(" "))
            elif isinstance(node, NavigableString):
                gaps[-1].append(str(node))

    walk(soup.children)
    return SectionLayout(lists=lists, gaps=[clean_text(" ".join(gap)) for gap in gaps])


class RequirementParser:
    """Parse core and elective sections into requirement groups"""

    def __init__(self, instruction_keywords=INSTRUCTION_KEYWORDS):
        self.instruction_keywords = tuple(k.lower() for k in instruction_keywords)
        self.strategies = (
            ("direct", self._parse_direct),
            ("inline", self._parse_inline_pick),
            ("sequential", self._parse_sequential),
            ("or-joined", self._parse_or_joined),
            ("flat", self._parse_flat),
        )

    def parse_core(self, fragment: Optional[str]) -> List[RequirementGroup]:
        """
        Parse a core section into groups.

        Args:
            fragment: Markup of the section, None if the page has no such section

        Returns:
            The groups of the first layout that recognizes the fragment, or []
        """
        if fragment is None:
            return []
        layout = split_section(fragment)
        for name, strategy in self.strategies:
            groups = strategy(layout)
            if groups:
                logger.debug(f"Core section parsed as {name} layout")
                return groups
        logger.warning("Could not find any course group in core section")
        return []

    def parse_electives(self, fragment: Optional[str]) -> List[str]:
        """Elective course ids; leftover "pick" instructions are skipped."""
        if fragment is None:
            return []
        ids = []
        for item in ListItems(fragment):
            if item.course_id is None:
                # Also covers instruction lines like "Pick one of the following"
                continue
            ids.append(item.course_id)
        return dedupe(ids)

    def _list_ids(self, lists, skip_instructions=False) -> List[str]:
        keywords = self.instruction_keywords if skip_instructions else ()
        ids = []
        for ul in lists:
            ids.extend(ListItems(ul).course_ids(skip_keywords=keywords))
        return dedupe(ids)

    # --- layouts, each returns None when it does not apply ---

    def _parse_direct(self, layout: SectionLayout) -> Optional[List[RequirementGroup]]:
        if len(layout.lists) != 1 or find_pick_counts(layout.text):
            return None
        ids = self._list_ids(layout.lists)
        if not ids:
            return None
        return [RequirementGroup("Core", len(ids), ids)]

    def _parse_inline_pick(self, layout: SectionLayout) -> Optional[List[RequirementGroup]]:
        if not layout.lists or AND_PICK_PATTERN.search(layout.text):
            return None
        groups = []
        for gap, ul in zip(layout.gaps, layout.lists):
            count = parse_pick_count(gap)
            if count is None:
                return None
            ids = self._list_ids([ul])
            if ids:
                groups.append(RequirementGroup(f"Pick {count}", count, ids))
        return groups or None

    def _parse_sequential(self, layout: SectionLayout) -> Optional[List[RequirementGroup]]:
        # (gap index, pick count) of every "and, pick N" marker, in page order
        markers = []
        for index, gap in enumerate(layout.gaps):
            for count in find_pick_counts(gap, AND_PICK_PATTERN):
                markers.append((index, count))
        if not markers:
            return None

        groups = []
        first_gap = markers[0][0]
        # Alternatives written before the first marker
        pick_one = self._list_ids(layout.lists[:first_gap], skip_instructions=True)
        if pick_one:
            groups.append(RequirementGroup("Pick 1", 1, pick_one))

        for position, (gap_index, count) in enumerate(markers):
            if position + 1 < len(markers):
                end = markers[position + 1][0]
            else:
                end = len(layout.lists)
            ids = self._list_ids(layout.lists[gap_index:end], skip_instructions=True)
            if ids:
                groups.append(RequirementGroup(f"Pick {count}", count, ids))
        return groups or None

    def _parse_or_joined(self, layout: SectionLayout) -> Optional[List[RequirementGroup]]:
        between = layout.gaps[1:-1]
        if not any(OR_PATTERN.match(gap) for gap in between):
            return None
        ids = self._list_ids(layout.lists)
        if not ids:
            return None
        return [RequirementGroup("Pick 1", 1, ids)]

    def _parse_flat(self, layout: SectionLayout) -> Optional[List[RequirementGroup]]:
        ids = self._list_ids(layout.lists)
        if not ids:
            return None
        counts = find_pick_counts(layout.text, PICK_ONLY_PATTERN)
        if counts and len(set(counts)) == 1:
            pick_count = counts[0]
        else:
            pick_count = len(ids)
        return [RequirementGroup("Core", pick_count, ids)]


def parse_specialization(
    html: str,
    specialization_id: str,
    name: str,
    program_id: str = PROGRAM_ID,
    parser: Optional[RequirementParser] = None,
) -> Specialization:
    """Build a Specialization from a full specialization page."""
    parser = parser or RequirementParser()
    soup = BeautifulSoup(html or "", "html.parser")

    core_section = extract_section_content(soup, CORE_SECTION, CORE_NEXT_SECTIONS)
    if core_section is None:
        logger.warning(f"{specialization_id}: no '{CORE_SECTION}' section")
    elective_section = extract_section_content(soup, ELECTIVES_SECTION, ELECTIVES_NEXT_SECTIONS)
    if elective_section is None:
        logger.warning(f"{specialization_id}: no '{ELECTIVES_SECTION}' section")

    return Specialization(
        specialization_id=specialization_id,
        name=name,
        program_id=program_id,
        core_courses=parser.parse_core(core_section),
        elective_course_ids=parser.parse_electives(elective_section),
    )

