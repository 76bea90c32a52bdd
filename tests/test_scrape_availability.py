import json
from datetime import date

import pytest
import requests

import scrape_availability
from scrape_availability import (
    BannerClient,
    BannerError,
    all_terms,
    create_term_data,
    find_term_files,
    merge_term_into_catalog,
    parse_sections,
    term_for_date,
    term_name,
)


@pytest.fixture(autouse=True)
def no_sleep(monkeypatch):
    monkeypatch.setattr(scrape_availability.time, "sleep", lambda seconds: None)


def row(subject, number, section, title="Artificial Intelligence", enrolled=10, capacity=20,
        faculty=None, crn="10001"):
    return {
        "subject": subject,
        "courseNumber": number,
        "sequenceNumber": section,
        "courseTitle": title,
        "creditHours": 3,
        "courseReferenceNumber": crn,
        "enrollment": enrolled,
        "maximumEnrollment": capacity,
        "seatsAvailable": capacity - enrolled,
        "waitCount": 2,
        "waitCapacity": 5,
        "faculty": faculty or [],
    }


ROWS = [
    row("CS", "6601", "O01", faculty=[
        {"displayName": "Helper, TA", "primaryIndicator": False},
        {"displayName": "Starner, Thad", "primaryIndicator": True},
    ]),
    row("CS", "6601", "O02", enrolled=15, crn="10002"),
    row("CS", "6601", "A", crn="10003"),
    row("CS", "6601", "OAN", crn="10004"),
    row("CS", "1331", "O01", title="Intro to Object-Oriented Programming", crn="10005"),
    row("CS", "8803", "O08", title="Compilers: Theory &amp; Practice", crn="10006"),
    row("CS", "8803", "O13", title="Generative AI", crn="10007"),
    row("HIST", "6000", "O01", title="History", crn="10008"),
    row("ISYE", "6501", "O01", title="Introduction to Analytics Modeling",
        faculty=[{"displayName": "Sokol, Joel", "primaryIndicator": False}], crn="10009"),
]


def page(rows, total=None):
    return {"success": True, "totalCount": len(rows) if total is None else total, "data": rows}


class FakeResponse(requests.Response):
    def __init__(self, status_code=200, payload=None):
        super().__init__()
        self.status_code = status_code
        self._content = json.dumps(payload).encode("utf-8") if payload is not None else b""
        self.encoding = "utf-8"
        self.url = scrape_availability.BANNER_URL


class FakeBanner:
    """Answers the Banner calls a BannerClient makes, in order."""

    def __init__(self, search_responses=(), term_error=None):
        self.cookies = requests.cookies.RequestsCookieJar()
        self.search_responses = list(search_responses)
        self.term_error = term_error
        self.terms = []
        self.offsets = []

    def get(self, url, params=None, headers=None, timeout=None, allow_redirects=True):
        if params is None:
            self.cookies.set("JSESSIONID", "abc")
            return FakeResponse()
        self.offsets.append(params["pageOffset"])
        response = self.search_responses.pop(0)
        if isinstance(response, Exception):
            raise response
        if isinstance(response, FakeResponse):
            return response
        return FakeResponse(200, response)

    def post(self, url, params=None, data=None, timeout=None):
        if self.term_error:
            raise self.term_error
        self.terms.append(data["term"])
        return FakeResponse()


def client_for(*search_responses, page_size=500, **kwargs):
    return BannerClient(session=FakeBanner(search_responses, **kwargs), delay=0, page_size=page_size)


@pytest.mark.parametrize(
    "day, expected",
    [(date(2025, 1, 10), "202502"), (date(2025, 4, 30), "202502"), (date(2025, 5, 1), "202505"),
     (date(2025, 7, 31), "202505"), (date(2025, 8, 1), "202508"), (date(2025, 12, 31), "202508")],
)
def test_term_for_date(day, expected):
    assert term_for_date(day) == expected


def test_all_terms_newest_first():
    assert all_terms(date(2015, 6, 1)) == ["201505", "201502", "201408", "201405", "201402"]


def test_term_name():
    assert term_name("202502") == "Spring 2025"
    assert term_name("202408") == "Fall 2024"
    assert term_name("202409") == "Unknown 2024"


def test_parse_sections_keeps_omscs_graduate_sections():
    courses = parse_sections(ROWS)
    assert list(courses) == ["CS-6601", "CS-8803-O08", "CS-8803-O13", "ISYE-6501"]

    ai = courses["CS-6601"].to_dict()
    assert [s["sectionNumber"] for s in ai["sections"]] == ["O01", "O02"]
    assert ai["totalSeats"] == 40
    assert ai["totalEnrolled"] == 25
    assert ai["totalAvailable"] == 15
    assert ai["totalWaitlisted"] == 4
    assert ai["sections"][0]["instructor"] == "Starner, Thad"
    assert ai["sections"][1]["instructor"] is None


def test_special_topics_sections_are_separate_courses():
    courses = parse_sections(ROWS)
    compilers = courses["CS-8803-O08"]
    assert compilers.course_number == "8803-O08"
    assert compilers.name == "Compilers: Theory & Practice"
    assert courses["CS-8803-O13"].name == "Generative AI"


def test_first_instructor_used_without_primary():
    courses = parse_sections(ROWS)
    assert courses["ISYE-6501"].sections[0].instructor == "Sokol, Joel"


def test_term_data_shape():
    term_data = create_term_data("202502", parse_sections(ROWS))
    assert term_data["term"] == "202502"
    assert term_data["termName"] == "Spring 2025"
    assert term_data["lastUpdated"].endswith("Z")
    assert term_data["courses"]["CS-6601"]["courseId"] == "CS-6601"


def test_catalog_keeps_latest_term_in_any_order():
    spring = create_term_data("202502", parse_sections([row("CS", "6601", "O01", title="AI")]))
    fall = create_term_data("202408", parse_sections([row("CS", "6601", "O01", title="Old AI"),
                                                      row("CS", "6250", "O01", title="Networks")]))

    newest_first = merge_term_into_catalog(merge_term_into_catalog(None, spring), fall)
    oldest_first = merge_term_into_catalog(merge_term_into_catalog(None, fall), spring)

    for catalog in (newest_first, oldest_first):
        assert catalog["courses"]["CS-6601"]["lastSeen"] == "202502"
        assert catalog["courses"]["CS-6601"]["name"] == "AI"
        assert catalog["courses"]["CS-6250"]["lastSeen"] == "202408"


def test_merge_term_does_not_modify_catalog():
    catalog = {"lastUpdated": "x", "courses": {"CS-6200": {"courseId": "CS-6200", "lastSeen": "201808"}}}
    term_data = create_term_data("202502", parse_sections(ROWS))
    merged = merge_term_into_catalog(catalog, term_data)
    assert list(catalog["courses"]) == ["CS-6200"]
    assert "CS-6200" in merged["courses"]
    assert "CS-6601" in merged["courses"]


def test_fetch_all_sections_follows_pagination():
    client = client_for(page(ROWS[:2], total=3), page(ROWS[2:3], total=3), page_size=2)
    client.set_term("202502")
    assert client.fetch_all_sections("202502") == ROWS[:3]
    assert client.session.terms == ["202502"]
    assert client.session.offsets == [0, 2]


def test_fetch_all_sections_stops_on_empty_page():
    client = client_for(page([], total=10), page_size=2)
    assert client.fetch_all_sections("202502") == []
    assert client.session.offsets == [0]


def test_search_retries_until_success():
    client = client_for({"success": False}, requests.ConnectionError("reset"), page(ROWS))
    assert client.search_courses("202502")["data"] == ROWS
    assert len(client.session.offsets) == 3


def test_search_gives_up_after_retries():
    client = client_for(*[{"success": False}] * scrape_availability.MAX_RETRIES)
    with pytest.raises(BannerError):
        client.search_courses("202502")
    assert len(client.session.offsets) == scrape_availability.MAX_RETRIES


def test_fetch_term_failure_returns_none():
    client = client_for(term_error=requests.ConnectionError("offline"))
    assert scrape_availability.fetch_term(client, "202502") is None


def test_find_term_files_oldest_first(tmp_path):
    for name in ("202502.json", "202408.json", "catalog.json", "notes.txt"):
        (tmp_path / name).write_text("{}", encoding="utf-8")
    assert [path.name for path in find_term_files(tmp_path)] == ["202408.json", "202502.json"]
    assert find_term_files(tmp_path / "missing") == []


def test_main_writes_term_file_and_catalog(tmp_path, capsys):
    (tmp_path / "catalog.json").write_text(
        json.dumps({"lastUpdated": "x", "courses": {"CS-6200": {"courseId": "CS-6200", "lastSeen": "201808"}}}),
        encoding="utf-8",
    )
    client = client_for(page(ROWS))

    assert scrape_availability.main(["--term", "202502", "--output", str(tmp_path)], client=client) == 0

    term_data = json.loads((tmp_path / "202502.json").read_text(encoding="utf-8"))
    catalog = json.loads((tmp_path / "catalog.json").read_text(encoding="utf-8"))
    assert set(term_data["courses"]) == {"CS-6601", "CS-8803-O08", "CS-8803-O13", "ISYE-6501"}
    assert catalog["courses"]["CS-6601"]["lastSeen"] == "202502"
    assert catalog["courses"]["CS-6200"]["lastSeen"] == "201808"
    output = capsys.readouterr().out
    assert "Spring 2025" in output
    assert "Catalog total courses: 5" in output


def test_main_skip_catalog_writes_term_file_only(tmp_path):
    client = client_for(page(ROWS))
    args = ["--term", "202502", "--output", str(tmp_path), "--skip-catalog"]
    assert scrape_availability.main(args, client=client) == 0
    assert (tmp_path / "202502.json").exists()
    assert not (tmp_path / "catalog.json").exists()


def test_main_dry_run_writes_nothing(tmp_path, capsys):
    output_dir = tmp_path / "data"
    client = client_for(page(ROWS))
    assert scrape_availability.main(["--term", "202502", "--output", str(output_dir), "--dry-run"],
                                    client=client) == 0
    assert not output_dir.exists()
    assert "CS-6601" in capsys.readouterr().out


def test_main_uses_current_term_by_default(tmp_path):
    client = client_for(page(ROWS))
    scrape_availability.main(["--output", str(tmp_path)], client=client, today=date(2024, 9, 15))
    assert client.session.terms == ["202408"]


def test_main_rejects_bad_term_code():
    with pytest.raises(SystemExit):
        scrape_availability.main(["--term", "2025-spring"], client=client_for())


def test_main_merge_rebuilds_catalog(tmp_path):
    spring = create_term_data("202502", parse_sections([row("CS", "6601", "O01", title="AI")]))
    fall = create_term_data("202408", parse_sections([row("CS", "6250", "O01", title="Networks")]))
    (tmp_path / "202502.json").write_text(json.dumps(spring), encoding="utf-8")
    (tmp_path / "202408.json").write_text(json.dumps(fall), encoding="utf-8")
    (tmp_path / "202505.json").write_text("[]", encoding="utf-8")

    assert scrape_availability.main(["--merge", "--output", str(tmp_path)]) == 0

    catalog = json.loads((tmp_path / "catalog.json").read_text(encoding="utf-8"))
    assert catalog["courses"]["CS-6601"]["lastSeen"] == "202502"
    assert catalog["courses"]["CS-6250"]["lastSeen"] == "202408"
