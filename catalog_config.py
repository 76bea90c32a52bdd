"""
Settings for the OMSCS catalog crawler.

Everything here is a plain module-level constant so the scripts can be
pointed at a different catalog by editing one file.
"""

BASE_URL = "https://omscs.gatech.edu"
CURRENT_COURSES_URL = f"{BASE_URL}/current-courses"

PROGRAM_ID = "cs"

# Specialization URL paths mapped to their IDs
SPECIALIZATION_URLS = {
    "/specialization-machine-learning": {"id": "cs:ml", "name": "Machine Learning"},
    "/specialization-computing-systems": {"id": "cs:cs", "name": "Computing Systems"},
    "/specialization-computational-perception-and-robotics": {
        "id": "cs:cpr",
        "name": "Computational Perception and Robotics",
    },
    "/specialization-artificial-intelligence-formerly-interactive-intelligence": {
        "id": "cs:ai",
        "name": "Artificial Intelligence",
    },
    "/specialization-human-computer-interaction": {
        "id": "cs:hci",
        "name": "Human-Computer Interaction",
    },
    "/specialization-computer-graphics": {"id": "cs:cg", "name": "Computer Graphics"},
}

# Every section under these numbers is a different course (e.g. CS 8803 O08 Compilers)
SPECIAL_TOPICS_NUMBERS = ("8803", "8813", "8823")

# Marks foundational courses on the current-courses page
FOUNDATIONAL_MARKER = "*"

HEADING_TAGS = ("h3", "h4")

CORE_SECTION = "Core Courses"
CORE_NEXT_SECTIONS = ("Electives", "Free Electives")
ELECTIVES_SECTION = "Electives"
ELECTIVES_NEXT_SECTIONS = ("Free Electives",)

# List items in a core section that describe a rule rather than name a course
INSTRUCTION_KEYWORDS = ("any core course", "any special topics")

STATIC_DIR = "static"
COURSES_FILE = "courses.json"
SPECIALIZATIONS_FILE = "specializations.json"

USER_AGENT = "OMSCS-Catalog-Crawler/1.0"
REQUEST_TIMEOUT = 30
REQUEST_DELAY = 0.15
MAX_RETRIES = 3
RETRY_BACKOFF = 2.0

# 1 crawls specializations one after another
MAX_WORKERS = 1

# Seat availability from the Banner 9 registration system
BANNER_URL = "https://registration.banner.gatech.edu/StudentRegistrationSsb"
# Subjects OMSCS students take courses from (e.g. ISYE 6501, MGT 8813, PUBP 6725)
BANNER_SUBJECTS = ("CS", "CSE", "ECE", "ISYE", "MGT", "PUBP", "INTA")
BANNER_PAGE_SIZE = 500
BANNER_REQUEST_DELAY = 1.0
GRADUATE_COURSE_MIN = 6000
# OMSCS sections are O plus two digits; OAN, OCY and OSZ belong to other programs
OMSCS_SECTION_PATTERN = r"^O\d{2}$"

# Term codes are YYYYMM with 02 = Spring, 05 = Summer, 08 = Fall
TERM_NAMES = {"02": "Spring", "05": "Summer", "08": "Fall"}
EARLIEST_TERM_YEAR = 2014

AVAILABILITY_DIR = "data"
AVAILABILITY_CATALOG_FILE = "catalog.json"

# Review statistics, read from the reviews table of the Supabase project
REVIEWS_TABLE = "reviews"
REVIEWS_PAGE_SIZE = 1000
COURSE_STATS_FILE = "course-stats.json"
GLOBAL_STATS_FILE = "global-stats.json"
# Weeks per semester by review semester code
SEMESTER_WEEKS = {"sp": 16, "fa": 16, "sm": 11}
DEFAULT_SEMESTER_WEEKS = 16
