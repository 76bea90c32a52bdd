"""
Crawl OMSCS seat availability from Georgia Tech's Banner 9 registration system.

Usage:
    python scrape_availability.py                  # current term
    python scrape_availability.py --term 202502    # one term
    python scrape_availability.py --all            # every term back to 2014
    python scrape_availability.py --dry-run        # fetch and preview, write nothing
    python scrape_availability.py --skip-catalog   # write term files only
    python scrape_availability.py --merge          # rebuild catalog.json from term files

Each term is written to data/<term>.json. Every course seen in any term is
also recorded in data/catalog.json together with the last term it was offered.
"""
import argparse
import logging
import re
import sys
import time
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional

import requests

from catalog_config import (
    AVAILABILITY_CATALOG_FILE,
    AVAILABILITY_DIR,
    BANNER_PAGE_SIZE,
    BANNER_REQUEST_DELAY,
    BANNER_SUBJECTS,
    BANNER_URL,
    EARLIEST_TERM_YEAR,
    GRADUATE_COURSE_MIN,
    MAX_RETRIES,
    OMSCS_SECTION_PATTERN,
    REQUEST_TIMEOUT,
    RETRY_BACKOFF,
    TERM_NAMES,
)
from catalog_text import clean_text, course_identity
from merge_catalog import load_json, save_registry
from scrape_catalog import get_session

logger = logging.getLogger(__name__)

OMSCS_SECTION = re.compile(OMSCS_SECTION_PATTERN)
TERM_CODE = re.compile(r"^\d{4}(?:02|05|08)$")
TERM_FILE = re.compile(r"^\d{6}\.json$")


class BannerError(Exception):
    """Banner answered, but not with usable search results."""


# --- terms ---

def term_for_date(day: Optional[date] = None) -> str:
    """Term code in session on day: Jan-Apr Spring, May-Jul Summer, else Fall."""
    day = day or date.today()
    if day.month <= 4:
        semester = "02"
    elif day.month <= 7:
        semester = "05"
    else:
        semester = "08"
    return f"{day.year}{semester}"


def all_terms(day: Optional[date] = None) -> List[str]:
    """Every term from the current one back to EARLIEST_TERM_YEAR, newest first."""
    current = term_for_date(day)
    current_year, current_semester = int(current[:4]), current[4:]
    terms = []
    for year in range(current_year, EARLIEST_TERM_YEAR - 1, -1):
        for semester in ("08", "05", "02"):
            if year == current_year and semester > current_semester:
                continue
            terms.append(f"{year}{semester}")
    return terms


def term_name(term_code: str) -> str:
    return f"{TERM_NAMES.get(term_code[4:], 'Unknown')} {term_code[:4]}"


def _timestamp(now: Optional[datetime] = None) -> str:
    now = now or datetime.now(timezone.utc)
    return now.strftime("%Y-%m-%dT%H:%M:%SZ")


# --- parsing Banner sections ---

@dataclass
class Section:
    crn: str
    section_number: str
    instructor: Optional[str]
    enrolled: int
    capacity: int
    seats_available: int
    wait_count: int
    wait_capacity: int

    @classmethod
    def from_banner(cls, row: dict) -> "Section":
        return cls(
            crn=str(row.get("courseReferenceNumber") or ""),
            section_number=row.get("sequenceNumber") or "",
            instructor=primary_instructor(row),
            enrolled=row.get("enrollment") or 0,
            capacity=row.get("maximumEnrollment") or 0,
            seats_available=row.get("seatsAvailable") or 0,
            wait_count=row.get("waitCount") or 0,
            wait_capacity=row.get("waitCapacity") or 0,
        )

    def to_dict(self) -> dict:
        return {
            "crn": self.crn,
            "sectionNumber": self.section_number,
            "instructor": self.instructor,
            "enrolled": self.enrolled,
            "capacity": self.capacity,
            "seatsAvailable": self.seats_available,
            "waitCount": self.wait_count,
            "waitCapacity": self.wait_capacity,
        }


@dataclass
class OfferedCourse:
    """A course offered in one term, with its OMSCS sections and seat totals."""
    course_id: str
    subject: str
    course_number: str
    name: str
    credit_hours: Optional[float] = None
    sections: List[Section] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "courseId": self.course_id,
            "subject": self.subject,
            "courseNumber": self.course_number,
            "name": self.name,
            "creditHours": self.credit_hours,
            "sections": [section.to_dict() for section in self.sections],
            "totalSeats": sum(s.capacity for s in self.sections),
            "totalEnrolled": sum(s.enrolled for s in self.sections),
            "totalAvailable": sum(s.seats_available for s in self.sections),
            "totalWaitlisted": sum(s.wait_count for s in self.sections),
        }


def primary_instructor(row: dict) -> Optional[str]:
    """The instructor flagged as primary, else the first one listed."""
    faculty = row.get("faculty") or []
    for member in faculty:
        if member.get("primaryIndicator"):
            return member.get("displayName") or None
    if faculty:
        return faculty[0].get("displayName") or None
    return None


def is_graduate_course(course_number: str) -> bool:
    return course_number.isdigit() and int(course_number) >= GRADUATE_COURSE_MIN


def parse_sections(rows, subjects=BANNER_SUBJECTS) -> Dict[str, OfferedCourse]:
    """
    Group Banner section rows into courses.

    Only graduate courses (6000 and up) in the given subjects with OMSCS
    sections are kept. Special-topics sections each become their own
    course, e.g. CS 8803 O08 -> CS-8803-O08.
    """
    courses = {}
    for row in rows:
        subject = row.get("subject") or ""
        number = str(row.get("courseNumber") or "")
        section_number = row.get("sequenceNumber") or ""
        if subject not in subjects or not is_graduate_course(number):
            continue
        if not OMSCS_SECTION.match(section_number):
            continue

        course_id, course_number = course_identity(subject, number, section_number)
        course = courses.get(course_id)
        if course is None:
            course = OfferedCourse(
                course_id=course_id,
                subject=subject,
                course_number=course_number,
                name=clean_text(row.get("courseTitle")),
                credit_hours=row.get("creditHours"),
            )
            courses[course_id] = course
        course.sections.append(Section.from_banner(row))
    return courses


def create_term_data(term_code: str, courses: Dict[str, OfferedCourse], now=None) -> dict:
    return {
        "term": term_code,
        "termName": term_name(term_code),
        "lastUpdated": _timestamp(now),
        "courses": {course_id: course.to_dict() for course_id, course in courses.items()},
    }


def merge_term_into_catalog(catalog: Optional[dict], term_data: dict, now=None) -> dict:
    """
    Record every course of a term in the catalog.

    A course keeps the details of the latest term it was seen in, whatever
    order the terms are merged in. The catalog passed in is not modified.
    """
    courses = dict((catalog or {}).get("courses") or {})
    term = term_data["term"]
    for course_id, course in (term_data.get("courses") or {}).items():
        previous = courses.get(course_id)
        if previous and str(previous.get("lastSeen", "")) > term:
            continue
        courses[course_id] = {
            "courseId": course.get("courseId", course_id),
            "subject": course.get("subject"),
            "courseNumber": course.get("courseNumber"),
            "name": course.get("name"),
            "creditHours": course.get("creditHours"),
            "lastSeen": term,
        }
    return {"lastUpdated": _timestamp(now), "courses": courses}


# --- Banner client ---

class BannerClient:
    """
    Course search against Banner 9.

    Banner remembers the selected term in the session cookie, so set_term
    must be called before searching and one client crawls one term at a time.
    """

    def __init__(self, session=None, base_url=BANNER_URL, delay=BANNER_REQUEST_DELAY,
                 page_size=BANNER_PAGE_SIZE):
        self.session = session or get_session()
        self.base_url = base_url
        self.delay = delay
        self.page_size = page_size
        self._last_request = 0.0

    def init_session(self):
        logger.info("Initializing Banner session...")
        self.session.get(self.base_url, timeout=REQUEST_TIMEOUT, allow_redirects=False)
        logger.info(f"Session initialized with {len(self.session.cookies)} cookies")

    def set_term(self, term_code: str):
        self._rate_limit()
        logger.info(f"Setting term to {term_code}...")
        response = self.session.post(
            f"{self.base_url}/ssb/term/search",
            params={"mode": "search"},
            data={"term": term_code},
            timeout=REQUEST_TIMEOUT,
        )
        response.raise_for_status()

    def search_courses(self, term_code: str, page_offset: int = 0) -> dict:
        """
        One page of search results for every subject in the term.

        Failed attempts are retried with exponential backoff; BannerError
        is raised once MAX_RETRIES attempts have failed.
        """
        url = f"{self.base_url}/ssb/searchResults/searchResults"
        params = {
            "txt_term": term_code,
            "txt_subj": "",
            "pageOffset": page_offset,
            "pageMaxSize": self.page_size,
        }
        last_error = None
        for attempt in range(1, MAX_RETRIES + 1):
            self._rate_limit()
            logger.info(f"Fetching courses (offset {page_offset})...")
            try:
                response = self.session.get(
                    url, params=params, headers={"Accept": "application/json"},
                    timeout=REQUEST_TIMEOUT,
                )
                response.raise_for_status()
                data = response.json()
                if not isinstance(data, dict) or not data.get("success"):
                    raise BannerError("Banner returned success=false")
                logger.info(
                    f"  Found {len(data.get('data') or [])} sections "
                    f"(total: {data.get('totalCount', 0)})"
                )
                return data
            except (requests.RequestException, ValueError, BannerError) as e:
                last_error = e
                logger.warning(f"  Attempt {attempt}/{MAX_RETRIES} failed: {e}")
                if attempt < MAX_RETRIES:
                    time.sleep(RETRY_BACKOFF * (2 ** (attempt - 1)))
        raise BannerError(f"Failed after {MAX_RETRIES} attempts: {last_error}") from last_error

    def fetch_all_sections(self, term_code: str) -> List[dict]:
        """Every section row of the term, following the pagination."""
        rows = []
        offset = 0
        while True:
            page = self.search_courses(term_code, offset)
            page_rows = page.get("data") or []
            rows.extend(page_rows)
            offset += self.page_size
            if not page_rows or offset >= (page.get("totalCount") or 0):
                return rows

    def _rate_limit(self):
        elapsed = time.monotonic() - self._last_request
        if elapsed < self.delay:
            time.sleep(self.delay - elapsed)
        self._last_request = time.monotonic()


# --- crawling and files ---

def fetch_term(client: BannerClient, term_code: str) -> Optional[dict]:
    """Crawl one term into term data; None if Banner has nothing or fails."""
    print(f"\n{'-' * 50}")
    print(f"Fetching {term_code} ({term_name(term_code)})...")
    print("-" * 50)
    try:
        client.set_term(term_code)
        rows = client.fetch_all_sections(term_code)
    except (requests.RequestException, BannerError) as e:
        logger.error(f"Error fetching {term_code}: {e}")
        return None

    print(f"  Total sections: {len(rows)}")
    if not rows:
        print(f"  No data available for {term_code}")
        return None

    courses = parse_sections(rows)
    print(f"  Graduate courses: {len(courses)}")
    return create_term_data(term_code, courses)


def load_catalog(file_path) -> Optional[dict]:
    catalog = load_json(file_path)
    if catalog is not None and not isinstance(catalog.get("courses"), dict):
        logger.warning(f"Ignoring {Path(file_path).name}: no 'courses' object")
        return None
    return catalog


def find_term_files(directory) -> List[Path]:
    """Term files such as 202502.json, oldest first."""
    directory = Path(directory)
    if not directory.is_dir():
        return []
    return sorted(path for path in directory.iterdir() if TERM_FILE.match(path.name))


def merge_term_files(directory):
    """
    Merge every term file in directory into its catalog.json.

    Returns:
        (catalog, number of term files merged)
    """
    directory = Path(directory)
    catalog = load_catalog(directory / AVAILABILITY_CATALOG_FILE)
    merged = 0
    for path in find_term_files(directory):
        term_data = load_json(path)
        if term_data is None or "term" not in term_data:
            logger.warning(f"Skipping {path.name}: not a term file")
            continue
        courses = term_data.get("courses") or {}
        print(f"  Merging: {term_data.get('termName', path.stem)} ({len(courses)} courses)")
        catalog = merge_term_into_catalog(catalog, term_data)
        merged += 1
    return catalog, merged


def print_term_preview(term_data: dict, limit: int = 10):
    courses = list(term_data["courses"].values())
    print(f"\n  Preview of {term_data['termName']}:")
    print("  " + "-" * 50)
    for course in courses[:limit]:
        print(
            f"  {course['courseId']:<12} | {len(course['sections'])} section(s) | "
            f"{course['totalEnrolled']}/{course['totalSeats']} enrolled"
        )
    if len(courses) > limit:
        print(f"  ... and {len(courses) - limit} more courses")


def print_summary(results):
    print("\n" + "=" * 60)
    print("Summary")
    print("=" * 60)
    if not results:
        print("No data fetched.")
        return
    print("\nTerm             | Courses | Sections")
    print("-" * 45)
    for name, courses, sections in results:
        print(f"{name:<16} | {courses:>7} | {sections:>8}")
    print("-" * 45)
    total_courses = sum(r[1] for r in results)
    total_sections = sum(r[2] for r in results)
    print(f"{'Total':<16} | {total_courses:>7} | {total_sections:>8}")


def run_merge(output_dir) -> int:
    print("=" * 60)
    print("Merge Catalog")
    print("=" * 60)
    print(f"Input directory: {output_dir}")
    catalog, merged = merge_term_files(output_dir)
    if not merged:
        print("No term files found to merge.")
        return 0
    path = save_registry(Path(output_dir) / AVAILABILITY_CATALOG_FILE, catalog)
    print(f"\nMerged {merged} term(s) into {path}")
    print(f"Catalog total courses: {len(catalog['courses'])}")
    print("=" * 60)
    return 0


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Crawl OMSCS seat availability from Banner")
    parser.add_argument("--term", help="Term code, e.g. 202502 for Spring 2025")
    parser.add_argument("--all", action="store_true",
                        help=f"Crawl every term back to {EARLIEST_TERM_YEAR}")
    parser.add_argument("--output", default=AVAILABILITY_DIR,
                        help="Directory for term files and catalog.json")
    parser.add_argument("--dry-run", action="store_true", help="Fetch and preview, write nothing")
    parser.add_argument("--skip-catalog", action="store_true",
                        help="Write term files but leave catalog.json alone")
    parser.add_argument("--merge", action="store_true",
                        help="Rebuild catalog.json from the term files in --output and exit")
    args = parser.parse_args(argv)
    if args.term and not TERM_CODE.match(args.term):
        parser.error(f"invalid term code {args.term!r}; expected YYYY02, YYYY05 or YYYY08")
    return args


def main(argv=None, client=None, today=None):
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    args = parse_args(argv)
    output_dir = Path(args.output)

    if args.merge:
        return run_merge(output_dir)

    if args.term:
        terms = [args.term]
    elif args.all:
        terms = all_terms(today)
    else:
        terms = [term_for_date(today)]

    print("=" * 60)
    print("OSCAR Seat Crawler")
    print("=" * 60)
    if args.dry_run:
        print("Running in dry-run mode (no files will be written)")
    print(f"Terms to fetch: {', '.join(term_name(term) for term in terms)}")
    print(f"Output directory: {output_dir}")

    client = client or BannerClient()
    try:
        client.init_session()
    except requests.RequestException as e:
        logger.error(f"Could not open a Banner session: {e}")
        return 1

    update_catalog = not (args.dry_run or args.skip_catalog)
    catalog = load_catalog(output_dir / AVAILABILITY_CATALOG_FILE) if update_catalog else None

    results = []
    for term_code in terms:
        term_data = fetch_term(client, term_code)
        if term_data is None:
            continue
        if args.dry_run:
            print_term_preview(term_data)
        else:
            print(f"  Saved: {save_registry(output_dir / f'{term_code}.json', term_data)}")
            if update_catalog:
                catalog = merge_term_into_catalog(catalog, term_data)
        sections = sum(len(course["sections"]) for course in term_data["courses"].values())
        results.append((term_data["termName"], len(term_data["courses"]), sections))

    if update_catalog and catalog is not None:
        path = save_registry(output_dir / AVAILABILITY_CATALOG_FILE, catalog)
        print(f"\nSaved catalog to {path}")

    print_summary(results)
    if update_catalog and catalog is not None:
        print(f"\nCatalog total courses: {len(catalog['courses'])}")
    if args.dry_run:
        print("\nDry-run complete. No files were written.")
    print("=" * 60)
    return 0


if __name__ == "__main__":
    sys.exit(main())
