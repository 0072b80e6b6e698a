"""Regex field extraction from free chat text into a resume record.

Everything here is best-effort: a field that cannot be found is left empty
(or zero) rather than guessed.
"""

import random
import re
from typing import Optional

from app.schemas.resume import JobExperience, Location, ResumeRecord

EMAIL_PATTERN = re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b")

PHONE_PATTERNS = (
    re.compile(r"(whatsapp:\+\d+)", re.IGNORECASE),
    re.compile(r"phone:\s*(\+?\d+)", re.IGNORECASE),
    re.compile(r"(\+\d{10,15})"),
)

FIRST_NAME_PATTERNS = (
    re.compile(r"first name:\s*([A-Za-z]+)", re.IGNORECASE),
    re.compile(r"\bname:\s*([A-Za-z]+)", re.IGNORECASE),
    re.compile(r"(?:my name is|i am|i'm|call me)\s+([A-Za-z]+)", re.IGNORECASE),
)

LAST_NAME_PATTERNS = (
    re.compile(r"last name:\s*([A-Za-z]+)", re.IGNORECASE),
    re.compile(r"surname:\s*([A-Za-z]+)", re.IGNORECASE),
    re.compile(r"(?:my name is|i am|i'm)\s+[A-Za-z]+\s+([A-Za-z]+)", re.IGNORECASE),
)

OCCUPATION_PATTERNS = (
    re.compile(r"current occupation:\s*([^,\n]+)", re.IGNORECASE),
    re.compile(r"occupation:\s*([^,\n]+)", re.IGNORECASE),
    re.compile(r"(?:i work as an?|i work as|i am an?|i'm an?|my job is|currently working as an?)\s+([^,.\n]+)", re.IGNORECASE),
)

YEARS_PATTERNS = (
    re.compile(r"experience:\s*(\d+)\s*years?", re.IGNORECASE),
    re.compile(r"(\d+)\s*(?:years?|yrs?)\s*(?:of\s*)?(?:experience|exp)\b", re.IGNORECASE),
)

CURRENT_SALARY_PATTERNS = (
    re.compile(r"current (?:monthly )?salary:\s*(\d+)", re.IGNORECASE),
    re.compile(r"(?:earning|i make|my salary is)\D{0,20}(\d+)", re.IGNORECASE),
)

EXPECTED_SALARY_PATTERNS = (
    re.compile(r"expected (?:monthly )?salary:\s*(\d+)", re.IGNORECASE),
    re.compile(r"(?:i want|expecting|i expect)\D{0,20}(\d+)", re.IGNORECASE),
)

CITY_PATTERNS = (
    re.compile(r"location:\s*([^,\n]+),", re.IGNORECASE),
    re.compile(r"city:\s*([^,\n]+)", re.IGNORECASE),
    re.compile(r"(?:live in|based in)\s+([^,.\n]+)", re.IGNORECASE),
)

COUNTRY_PATTERNS = (
    re.compile(r"location:\s*[^,\n]+,\s*([^\n.]+)", re.IGNORECASE),
    re.compile(r"country:\s*([^,\n]+)", re.IGNORECASE),
    re.compile(r"(?:live in|based in)\s+[^,\n]+,\s*([^\n.]+)", re.IGNORECASE),
)

JOB_PATTERNS = (
    re.compile(r"last job:\s*([^,]+),\s*([^,]+),\s*([^,]+?)\s*-\s*([^,]+),\s*([A-Z_]+)", re.IGNORECASE),
    re.compile(r"worked at\s+([^,]+?)\s+as\s+(?:an?\s+)?([^,]+?)\s+from\s+([^,]+?)\s+to\s+([^,.\n]+)", re.IGNORECASE),
)

HARD_SKILLS = [
    "python", "c#", "javascript", "typescript", "django", "node.js", "react",
    "postgresql", "mysql", "mongodb", "docker", "kubernetes", "azure devops",
    "git", "restful api", "ml.net", "scikit-learn", "tensorflow", "azure", "aws",
    "sql", "nosql", "ci/cd", "devops", "machine learning", "api development",
    "cloud deployment", "data processing", "java", "spring", "angular", "vue",
    "php", "laravel", "ruby", "rails",
]

SOFT_SKILLS = [
    "problem-solving", "problem solving", "analytical thinking", "team collaboration",
    "communication", "leadership", "teamwork", "adaptability", "time management",
    "mentoring", "cross-functional", "creative", "organized", "detail-oriented",
    "collaborative",
]


def _first_group(patterns, text: str) -> str:
    for pattern in patterns:
        match = pattern.search(text)
        if match:
            return match.group(1).strip()
    return ""


def _first_match(patterns, text: str) -> str:
    for pattern in patterns:
        match = pattern.search(text)
        if match:
            return match.group(0).strip()
    return ""


def _first_int(patterns, text: str) -> int:
    value = _first_group(patterns, text)
    return int(value) if value.isdigit() else 0


def _keywords_found(keywords: list[str], text: str) -> str:
    lowered = text.lower()
    found: list[str] = []
    for keyword in keywords:
        if re.search(rf"(?<![\w]){re.escape(keyword)}(?![\w])", lowered) and keyword not in found:
            found.append(keyword)
    return ", ".join(found)


def extract_job_experience(text: str) -> list[JobExperience]:
    for pattern in JOB_PATTERNS:
        match = pattern.search(text)
        if not match:
            continue
        groups = [g.strip() if g else "" for g in match.groups()]
        employment_type = groups[4].upper() if len(groups) > 4 and groups[4] else "FULL_TIME"
        return [
            JobExperience(
                companyName=groups[0],
                role=groups[1],
                startDate=groups[2],
                endDate=groups[3],
                employmentType=employment_type,
            )
        ]
    return []


def build_summary(first_name: str, last_name: str, occupation: str, years: int, location: Location) -> str:
    name = f"{first_name} {last_name}".strip()
    if not name and not occupation and not years:
        return ""
    where = ", ".join(part for part in (location.city, location.country) if part)
    summary = f"{name or 'Candidate'} is a {occupation.lower() or 'professional'} with {years} years of experience"
    if where:
        summary += f", currently based in {where}"
    return summary + "."


def parse_resume(text: str, sender: Optional[str] = None, *, record_id: Optional[int] = None) -> ResumeRecord:
    """Scrape whatever resume fields the text mentions."""
    text = text or ""
    first_name = _first_group(FIRST_NAME_PATTERNS, text)
    last_name = _first_group(LAST_NAME_PATTERNS, text)
    occupation = _first_group(OCCUPATION_PATTERNS, text)
    years = _first_int(YEARS_PATTERNS, text)
    location = Location(city=_first_group(CITY_PATTERNS, text), country=_first_group(COUNTRY_PATTERNS, text))

    return ResumeRecord(
        id=record_id if record_id is not None else random.randint(1, 99_999_999),
        email=_first_match((EMAIL_PATTERN,), text),
        firstName=first_name,
        lastName=last_name,
        phoneNumber=_first_group(PHONE_PATTERNS, text) or (sender or ""),
        hardSkills=_keywords_found(HARD_SKILLS, text),
        softSkills=_keywords_found(SOFT_SKILLS, text),
        shortCVSummary=build_summary(first_name, last_name, occupation, years, location),
        currentOccupation=occupation,
        currentMonthlySalary=_first_int(CURRENT_SALARY_PATTERNS, text),
        expectedMonthlySalary=_first_int(EXPECTED_SALARY_PATTERNS, text),
        totalYearsOfExperience=years,
        lastJobsExperience=extract_job_experience(text),
        location=location,
    )
