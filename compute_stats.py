"""
Compute review statistics for the course catalog.

Usage:
    SUPABASE_URL=... SUPABASE_SERVICE_KEY=... python compute_stats.py

Reads every review from the Supabase "reviews" table and writes
static/course-stats.json (averages per course, every catalog course
included) and static/global-stats.json (total hours suffered).
"""
import logging
import os
import sys
from pathlib import Path
from typing import Dict, Iterable, List, Optional

import requests

from catalog_config import (
    COURSE_STATS_FILE,
    COURSES_FILE,
    DEFAULT_SEMESTER_WEEKS,
    GLOBAL_STATS_FILE,
    REQUEST_TIMEOUT,
    REVIEWS_PAGE_SIZE,
    REVIEWS_TABLE,
    SEMESTER_WEEKS,
    STATIC_DIR,
)
from merge_catalog import load_registry, save_registry
from scrape_catalog import get_session

logger = logging.getLogger(__name__)

REVIEW_COLUMNS = "course_id,semester,workload,difficulty,overall,staff_support"


def fetch_reviews(supabase_url: str, service_key: str, session=None,
                  page_size: int = REVIEWS_PAGE_SIZE) -> List[dict]:
    """
    Read the whole reviews table through the Supabase REST API.

    Rows come back page_size at a time (selected with the Range header);
    a short page is the last one.
    """
    session = session or get_session()
    url = f"{supabase_url.rstrip('/')}/rest/v1/{REVIEWS_TABLE}"
    headers = {"apikey": service_key, "Authorization": f"Bearer {service_key}"}
    reviews = []
    offset = 0
    while True:
        response = session.get(
            url,
            params={"select": REVIEW_COLUMNS},
            headers={**headers, "Range-Unit": "items", "Range": f"{offset}-{offset + page_size - 1}"},
            timeout=REQUEST_TIMEOUT,
        )
        response.raise_for_status()
        rows = response.json()
        reviews.extend(rows)
        offset += len(rows)
        if len(rows) < page_size:
            return reviews


def _average(values) -> Optional[float]:
    values = [value for value in values if value is not None]
    if not values:
        return None
    return round(sum(values) / len(values), 2)


def empty_stats(course_id: str) -> dict:
    return {
        "courseId": course_id,
        "numReviews": 0,
        "avgWorkload": None,
        "avgDifficulty": None,
        "avgOverall": None,
        "avgStaffSupport": None,
    }


def compute_course_stats(course_ids: Iterable[str], reviews: Iterable[dict]) -> Dict[str, dict]:
    """
    Per-course review averages, keyed and sorted by course id.

    Every id in course_ids gets an entry, reviewed or not. Reviews of a
    course missing from the catalog still get one.
    """
    stats = {course_id: empty_stats(course_id) for course_id in course_ids}
    by_course = {}
    for review in reviews:
        by_course.setdefault(review["course_id"], []).append(review)

    for course_id, course_reviews in by_course.items():
        stats[course_id] = {
            "courseId": course_id,
            "numReviews": len(course_reviews),
            "avgWorkload": _average(r.get("workload") for r in course_reviews),
            "avgDifficulty": _average(r.get("difficulty") for r in course_reviews),
            "avgOverall": _average(r.get("overall") for r in course_reviews),
            "avgStaffSupport": _average(r.get("staff_support") for r in course_reviews),
        }
    return {course_id: stats[course_id] for course_id in sorted(stats)}


def compute_global_stats(reviews: Iterable[dict]) -> dict:
    """Hours suffered: weekly workload times the weeks in that review's semester, summed."""
    hours = 0.0
    for review in reviews:
        if review.get("workload") is None or review.get("semester") is None:
            continue
        hours += review["workload"] * SEMESTER_WEEKS.get(review["semester"], DEFAULT_SEMESTER_WEEKS)
    return {
        "hoursSuffered": round(hours),
        "semesterWeeks": {
            "spring": SEMESTER_WEEKS["sp"],
            "fall": SEMESTER_WEEKS["fa"],
            "summer": SEMESTER_WEEKS["sm"],
        },
    }


def main(session=None, static_dir=STATIC_DIR, environ=None):
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    environ = os.environ if environ is None else environ
    supabase_url = environ.get("SUPABASE_URL")
    service_key = environ.get("SUPABASE_SERVICE_KEY")
    if not supabase_url or not service_key:
        logger.error("Missing required environment variables: SUPABASE_URL, SUPABASE_SERVICE_KEY")
        return 1

    static_dir = Path(static_dir)
    courses = load_registry(static_dir / COURSES_FILE)
    if courses is None:
        logger.warning(f"No {COURSES_FILE} in {static_dir}; only reviewed courses will have stats")
    course_ids = list(courses or {})
    print(f"Found {len(course_ids)} courses in catalog")

    try:
        reviews = fetch_reviews(supabase_url, service_key, session=session)
    except (requests.RequestException, ValueError) as e:
        logger.error(f"Error fetching reviews: {e}")
        return 1
    print(f"Fetched {len(reviews)} reviews")

    course_stats = compute_course_stats(course_ids, reviews)
    reviewed = sum(1 for stats in course_stats.values() if stats["numReviews"])
    print(f"Computed stats for {reviewed} courses with reviews")
    print(f"Wrote {save_registry(static_dir / COURSE_STATS_FILE, course_stats)}")

    global_stats = compute_global_stats(reviews)
    print(f"Total hours suffered: {global_stats['hoursSuffered']:,}")
    print(f"Wrote {save_registry(static_dir / GLOBAL_STATS_FILE, global_stats)}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
