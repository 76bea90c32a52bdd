"""
Crawl the OMSCS catalog: the current-courses page and every specialization page.

Usage:
    python scrape_catalog.py
    python scrape_catalog.py --dry-run    # crawl and report, write nothing

Reads static/courses.json and static/specializations.json if they exist,
merges the crawl into them and writes them back.
"""
import logging
import sys
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from pathlib import Path

import requests

from catalog_config import (
    BASE_URL,
    COURSES_FILE,
    CURRENT_COURSES_URL,
    MAX_RETRIES,
    MAX_WORKERS,
    PROGRAM_ID,
    REQUEST_DELAY,
    REQUEST_TIMEOUT,
    RETRY_BACKOFF,
    SPECIALIZATION_URLS,
    SPECIALIZATIONS_FILE,
    STATIC_DIR,
    USER_AGENT,
)
from catalog_text import ListItems, parse_course_item
from merge_catalog import CatalogReconciler, load_registry, save_registry
from parse_requirements import RequirementParser, parse_specialization

logger = logging.getLogger(__name__)


def get_session():
    session = requests.Session()
    session.headers.update({"User-Agent": USER_AGENT})
    return session


def fetch_page(url, session=None):
    """
    Fetch a page and return its HTML.

    Connection problems and 5xx answers are retried with exponential
    backoff. Any other non-success status raises requests.HTTPError.
    """
    session = session or get_session()
    for attempt in range(MAX_RETRIES + 1):
        logger.info(f"Fetching {url}...")
        try:
            response = session.get(url, timeout=REQUEST_TIMEOUT)
            if response.status_code < 500 or attempt == MAX_RETRIES:
                response.raise_for_status()
                return response.text
            logger.warning(f"{url} answered {response.status_code}")
        except (requests.ConnectionError, requests.Timeout) as e:
            if attempt == MAX_RETRIES:
                raise
            logger.warning(f"Error fetching {url}: {e}")
        time.sleep(RETRY_BACKOFF * (2 ** attempt))


def parse_current_courses(html):
    """Every course listed on the current-courses page, in page order."""
    courses = []
    for item in ListItems(html):
        course = parse_course_item(item.html)
        if course:
            courses.append(course)
    return courses


def crawl_current_courses(fetch=fetch_page):
    return parse_current_courses(fetch(CURRENT_COURSES_URL))


def crawl_specialization(url_path, spec_info, fetch=fetch_page, parser=None):
    """Fetch one specialization page and parse its core and elective sections."""
    html = fetch(f"{BASE_URL}{url_path}")
    return parse_specialization(
        html, spec_info["id"], spec_info["name"], PROGRAM_ID, parser=parser
    )


def crawl_all_specializations(reconciler, fetch=fetch_page, max_workers=MAX_WORKERS,
                              specialization_urls=None):
    """
    Crawl every known specialization and merge each result into reconciler.

    A page that fails to download or parse is logged and skipped.

    Returns:
        (list of crawled Specialization, list of ids that failed)
    """
    specialization_urls = specialization_urls or SPECIALIZATION_URLS
    parser = RequirementParser()
    crawled = []
    failures = []

    def crawl_one(url_path, spec_info):
        logger.info(f"Crawling {spec_info['name']}...")
        spec = crawl_specialization(url_path, spec_info, fetch=fetch, parser=parser)
        reconciler.add_specialization(spec)
        logger.info(
            f"  {spec_info['name']}: {len(spec.core_courses)} core groups, "
            f"{len(spec.elective_course_ids)} electives"
        )
        return spec

    if max_workers and max_workers > 1:
        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            futures = {
                executor.submit(crawl_one, url_path, spec_info): spec_info
                for url_path, spec_info in specialization_urls.items()
            }
            for future in as_completed(futures):
                spec_info = futures[future]
                try:
                    crawled.append(future.result())
                except Exception as e:
                    logger.error(f"Error crawling {spec_info['name']}: {e}")
                    failures.append(spec_info["id"])
    else:
        for url_path, spec_info in specialization_urls.items():
            try:
                crawled.append(crawl_one(url_path, spec_info))
            except Exception as e:
                logger.error(f"Error crawling {spec_info['name']}: {e}")
                failures.append(spec_info["id"])
            time.sleep(REQUEST_DELAY)

    return crawled, failures


def main(argv=None, fetch=None, static_dir=STATIC_DIR):
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    argv = sys.argv[1:] if argv is None else argv
    is_dry_run = "--dry-run" in argv

    if fetch is None:
        session = get_session()

        def fetch(url):
            return fetch_page(url, session=session)

    print("=" * 60)
    print("OMSCS Catalog Crawler")
    print("=" * 60)
    if is_dry_run:
        print("Running in dry-run mode (no changes will be written)")

    courses_path = Path(static_dir) / COURSES_FILE
    specs_path = Path(static_dir) / SPECIALIZATIONS_FILE

    existing_courses = load_registry(courses_path)
    existing_specs = load_registry(specs_path)
    if existing_courses:
        print(f"\nLoaded {len(existing_courses)} existing courses")

    reconciler = CatalogReconciler(existing_courses, existing_specs)

    print("\nCrawling current courses...")
    try:
        crawled_courses = crawl_current_courses(fetch=fetch)
    except requests.RequestException as e:
        logger.error(f"Could not fetch the course list: {e}")
        return 1
    print(f"  Found {len(crawled_courses)} courses on website")

    print("\nMerging courses...")
    reconciler.add_courses(crawled_courses)

    print("\nCrawling specializations...")
    crawled_specs, failures = crawl_all_specializations(reconciler, fetch=fetch)
    print(f"  Crawled {len(crawled_specs)} specializations")

    print("\n" + "=" * 60)
    print("Summary")
    print("=" * 60)
    print(f"Total courses: {len(reconciler.courses)}")
    print(f"New courses: {len(reconciler.new_courses)}")
    for course_id in reconciler.new_courses:
        print(f"  + {course_id}")
    print(f"Specializations: {len(reconciler.specializations)}")
    if failures:
        print(f"Failed specializations: {', '.join(failures)}")
    print("=" * 60)

    if not is_dry_run:
        print(f"\nWrote {save_registry(courses_path, reconciler.courses)}")
        print(f"Wrote {save_registry(specs_path, reconciler.specializations)}")

    return 0


if __name__ == "__main__":
    sys.exit(main())
