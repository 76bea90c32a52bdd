"""
Merge freshly crawled courses and specializations into the saved catalog.

The website is the source of truth for names, urls and numbers. Curators
maintain "aliases", "isDeprecated" and "isFoundational" by hand in
courses.json, so those are kept from the saved record whenever it has them.
Courses and specializations are never removed here.
"""

import json
import logging
import threading
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple

logger = logging.getLogger(__name__)

CURATOR_FIELDS = ("aliases", "isDeprecated", "isFoundational")


def _as_record(item) -> dict:
    return item.to_dict() if hasattr(item, "to_dict") else dict(item)


def merge_courses(
    crawled_courses: Iterable, existing_courses: Optional[Dict[str, dict]]
) -> Tuple[Dict[str, dict], List[str]]:
    """
    Merge crawled courses into the saved registry.

    Args:
        crawled_courses: Course objects (or their dicts) from the current crawl
        existing_courses: Saved registry keyed by course id, or None

    Returns:
        (merged registry, ids of courses not seen before)
    """
    courses = {course_id: dict(record) for course_id, record in (existing_courses or {}).items()}
    new_courses = []

    for item in crawled_courses:
        fresh = _as_record(item)
        course_id = fresh["courseId"]
        previous = courses.get(course_id)
        if previous is None:
            new_courses.append(course_id)
            courses[course_id] = fresh
            logger.info(f"New course: {course_id} - {fresh.get('name', '')}")
            continue

        merged = dict(fresh)
        for key in CURATOR_FIELDS:
            if key in previous:
                merged[key] = previous[key]
        merged["aliases"] = list(merged.get("aliases") or [])
        merged["isDeprecated"] = bool(merged.get("isDeprecated", False))
        courses[course_id] = merged

    return courses, new_courses


def merge_specializations(
    crawled_specs: Iterable, existing_specs: Optional[Dict[str, dict]]
) -> Dict[str, dict]:
    """Crawled specializations replace saved ones with the same id; others stay."""
    specializations = dict(existing_specs or {})
    for item in crawled_specs:
        spec = _as_record(item)
        specializations[spec["specializationId"]] = spec
    return specializations


class CatalogReconciler:
    """
    The in-memory catalog while a crawl is running.

    Specialization results may arrive from several worker threads; every
    merge takes the lock so only one runs at a time.
    """

    def __init__(self, courses: Optional[Dict[str, dict]] = None,
                 specializations: Optional[Dict[str, dict]] = None):
        self.courses = dict(courses or {})
        self.specializations = dict(specializations or {})
        self.new_courses: List[str] = []
        self._lock = threading.Lock()

    def add_courses(self, crawled_courses: Iterable) -> List[str]:
        with self._lock:
            self.courses, new_courses = merge_courses(crawled_courses, self.courses)
            for course_id in new_courses:
                if course_id not in self.new_courses:
                    self.new_courses.append(course_id)
        return new_courses

    def add_specialization(self, spec) -> None:
        with self._lock:
            self.specializations = merge_specializations([spec], self.specializations)


def load_json(file_path) -> Optional[dict]:
    """
    Load a JSON object from disk.

    A missing file gives None. So does a file that cannot be read or does
    not hold a JSON object, after a warning.
    """
    file_path = Path(file_path)
    if not file_path.exists():
        return None
    try:
        with open(file_path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, ValueError) as e:
        logger.warning(f"Failed to load existing {file_path.name}: {e}")
        return None
    if not isinstance(data, dict):
        logger.warning(f"Ignoring {file_path.name}: expected a JSON object")
        return None
    return data


def load_registry(file_path) -> Optional[Dict[str, dict]]:
    """
    Load a saved registry (courses.json or specializations.json).

    Anything but an object of records keyed by id is treated like a
    missing file, so the crawl starts fresh.
    """
    data = load_json(file_path)
    if data is None:
        return None
    if not all(isinstance(record, dict) for record in data.values()):
        logger.warning(f"Ignoring {Path(file_path).name}: expected an object of records keyed by id")
        return None
    return data


def save_registry(file_path, registry: Dict[str, dict]) -> Path:
    file_path = Path(file_path)
    file_path.parent.mkdir(parents=True, exist_ok=True)
    with open(file_path, "w", encoding="utf-8") as f:
        json.dump(registry, f, indent=2, ensure_ascii=False)
        f.write("\n")
    return file_path
