import json

import pytest
import requests

import scrape_catalog
from catalog_config import BASE_URL, CURRENT_COURSES_URL, SPECIALIZATION_URLS
from merge_catalog import CatalogReconciler

COURSES_PAGE = """
<html><body>
<nav><ul><li><a href="/about">About</a></li><li><a href="/apply">Apply</a></li></ul></nav>
<h3>Foundational courses are marked with *</h3>
<ul>
  <li><a href="/course/cs-6200">CS 6200 Graduate Introduction to Operating Systems</a>*</li>
  <li><a href="/course/cs-6601">CS 6601 Artificial Intelligence</a></li>
  <li><a href="/course/cs-8803-o08">CS 8803 O08: Compilers - Theory and Practice</a></li>
  <li>CS 7641 Machine Learning</li>
</ul>
</body></html>
"""

SPEC_PAGE = """
<h3>Core Courses (6 hours)</h3>
<p>Pick one (1) of:</p>
<ul><li>CS 6505 Computability</li><li>CS 6515 Introduction to Graduate Algorithms</li></ul>
<p>And, pick one (1) of:</p>
<ul><li>CS 7641 Machine Learning</li></ul>
<h3>Electives (9 hours)</h3>
<ul><li>CS 6601 Artificial Intelligence</li></ul>
"""


@pytest.fixture(autouse=True)
def no_sleep(monkeypatch):
    monkeypatch.setattr(scrape_catalog.time, "sleep", lambda seconds: None)


def fake_fetch(fail=()):
    def fetch(url):
        if url == CURRENT_COURSES_URL:
            return COURSES_PAGE
        if any(url.endswith(path) for path in fail):
            raise requests.HTTPError(f"500 Server Error for url: {url}")
        return SPEC_PAGE
    return fetch


def test_parse_current_courses():
    courses = scrape_catalog.parse_current_courses(COURSES_PAGE)
    assert [course.course_id for course in courses] == ["CS-6200", "CS-6601", "CS-8803-O08", "CS-7641"]
    assert courses[0].is_foundational is True
    assert courses[1].is_foundational is False
    assert courses[1].url == f"{BASE_URL}/course/cs-6601"
    assert courses[2].name == "Compilers - Theory and Practice"
    assert courses[3].url is None


def test_crawl_specialization():
    spec = scrape_catalog.crawl_specialization(
        "/specialization-machine-learning", {"id": "cs:ml", "name": "Machine Learning"}, fetch=fake_fetch()
    )
    assert spec.specialization_id == "cs:ml"
    assert [group.to_dict() for group in spec.core_courses] == [
        {"name": "Pick 1", "pickCount": 1, "courseIds": ["CS-6505", "CS-6515"]},
        {"name": "Pick 1", "pickCount": 1, "courseIds": ["CS-7641"]},
    ]
    assert spec.elective_course_ids == ["CS-6601"]


@pytest.mark.parametrize("max_workers", [1, 4])
def test_failed_page_only_skips_that_specialization(max_workers):
    reconciler = CatalogReconciler(specializations={"cs:cg": {"specializationId": "cs:cg", "kept": True}})
    crawled, failures = scrape_catalog.crawl_all_specializations(
        reconciler,
        fetch=fake_fetch(fail=("/specialization-computer-graphics",)),
        max_workers=max_workers,
    )
    assert failures == ["cs:cg"]
    assert len(crawled) == len(SPECIALIZATION_URLS) - 1
    assert reconciler.specializations["cs:cg"] == {"specializationId": "cs:cg", "kept": True}
    assert reconciler.specializations["cs:ml"]["electiveCourseIds"] == ["CS-6601"]


class FakeResponse(requests.Response):
    def __init__(self, status_code, body=""):
        super().__init__()
        self.status_code = status_code
        self._content = body.encode("utf-8")
        self.encoding = "utf-8"
        self.url = "https://omscs.gatech.edu/page"


class FakeSession:
    def __init__(self, responses):
        self.responses = list(responses)
        self.calls = 0

    def get(self, url, timeout=None):
        self.calls += 1
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


def test_fetch_page_retries_server_errors():
    session = FakeSession([FakeResponse(503), requests.ConnectionError("reset"), FakeResponse(200, "<p>ok</p>")])
    assert scrape_catalog.fetch_page("https://omscs.gatech.edu/page", session=session) == "<p>ok</p>"
    assert session.calls == 3


def test_fetch_page_raises_on_missing_page():
    session = FakeSession([FakeResponse(404)])
    with pytest.raises(requests.HTTPError):
        scrape_catalog.fetch_page("https://omscs.gatech.edu/page", session=session)
    assert session.calls == 1


def test_fetch_page_gives_up_after_retries():
    session = FakeSession([FakeResponse(500)] * (scrape_catalog.MAX_RETRIES + 1))
    with pytest.raises(requests.HTTPError):
        scrape_catalog.fetch_page("https://omscs.gatech.edu/page", session=session)
    assert session.calls == scrape_catalog.MAX_RETRIES + 1


def test_main_writes_merged_catalog(tmp_path, capsys):
    static = tmp_path / "static"
    static.mkdir()
    (static / "courses.json").write_text(
        json.dumps({"CS-6601": {"courseId": "CS-6601", "name": "AI", "isDeprecated": True, "aliases": []}}),
        encoding="utf-8",
    )

    assert scrape_catalog.main([], fetch=fake_fetch(), static_dir=static) == 0

    courses = json.loads((static / "courses.json").read_text(encoding="utf-8"))
    specs = json.loads((static / "specializations.json").read_text(encoding="utf-8"))
    assert courses["CS-6601"]["name"] == "Artificial Intelligence"
    assert courses["CS-6601"]["isDeprecated"] is True
    assert set(specs) == {info["id"] for info in SPECIALIZATION_URLS.values()}
    output = capsys.readouterr().out
    assert "New courses: 3" in output
    assert "  + CS-7641" in output


def test_main_dry_run_writes_nothing(tmp_path):
    static = tmp_path / "static"
    assert scrape_catalog.main(["--dry-run"], fetch=fake_fetch(), static_dir=static) == 0
    assert not static.exists()


def test_main_fails_without_course_list(tmp_path):
    def fetch(url):
        raise requests.ConnectionError("offline")

    assert scrape_catalog.main([], fetch=fetch, static_dir=tmp_path) == 1
    assert not (tmp_path / "courses.json").exists()


def test_main_starts_fresh_from_registry_with_non_record_values(tmp_path):
    static = tmp_path / "static"
    static.mkdir()
    (static / "courses.json").write_text(json.dumps({"CS-6601": "x"}), encoding="utf-8")

    assert scrape_catalog.main([], fetch=fake_fetch(), static_dir=static) == 0

    courses = json.loads((static / "courses.json").read_text(encoding="utf-8"))
    assert courses["CS-6601"]["name"] == "Artificial Intelligence"
