"""Pure helpers for keyword extraction and hard-filter evaluation."""

import re
from typing import Dict, List

from jobalert.domain.models import (
    SALARY_CEILING,
    SALARY_FLOOR,
    Job,
    SalaryBucket,
    Subscription,
    clean_keyword_token,
)

TEN_MILLION = 10_000_000
TWENTY_MILLION = 20_000_000
THIRTY_MILLION = 30_000_000

_WORD_SPLIT = re.compile(r"\s+")


def _words(text: str) -> List[str]:
    return [w for w in _WORD_SPLIT.split(text.lower()) if w]


def extract_keywords(
    job: Job, description_word_limit: int = 20, min_length: int = 3
) -> List[str]:
    """Derive the lookup keywords of a job.

    Sources, in order: every word of the title, every word of every skill,
    and the first ``description_word_limit`` words of the description.
    Tokens are cleaned exactly like subscription keywords (lowercased,
    surrounding punctuation stripped, a leading dot kept as in ".net").
    Tokens shorter than ``min_length`` are dropped; duplicates keep the
    first occurrence.

    Example:
        >>> extract_keywords(Job(job_id="1", title="Senior JavaScript Developer",
        ...                      skills=["javascript", "React"]))
        ['senior', 'javascript', 'developer', 'react']
    """
    candidates: List[str] = []
    candidates.extend(_words(job.title))
    for skill in job.skills:
        candidates.extend(_words(skill))
    candidates.extend(_words(job.description)[:description_word_limit])

    keywords: Dict[str, None] = {}
    for token in candidates:
        cleaned = clean_keyword_token(token)
        if len(cleaned) >= min_length:
            keywords.setdefault(cleaned, None)
    return list(keywords)


def salary_matches(bucket: SalaryBucket, min_salary, max_salary) -> bool:
    """Check a job's salary range against an enumerated subscription bucket.

    A missing minimum counts as 0 and a missing maximum as 999,999,999.
    """
    bucket = SalaryBucket(bucket)
    if bucket == SalaryBucket.ALL:
        return True

    low = float(min_salary) if min_salary is not None else SALARY_FLOOR
    high = float(max_salary) if max_salary is not None else SALARY_CEILING

    if bucket == SalaryBucket.UNDER_10M:
        return high < TEN_MILLION
    if bucket == SalaryBucket.FROM_10M_TO_20M:
        return low >= TEN_MILLION and high <= TWENTY_MILLION
    if bucket == SalaryBucket.FROM_20M_TO_30M:
        return low >= TWENTY_MILLION and high <= THIRTY_MILLION
    if bucket == SalaryBucket.OVER_30M:
        return low > THIRTY_MILLION
    return False


def filter_checks(job: Job, subscription: Subscription) -> Dict[str, bool]:
    """Evaluate every hard-filter field of a (job, subscription) pair.

    Returns:
        Mapping of field name to whether it matched
    """
    job_values = {
        "province": job.location.province,
        "district": job.location.district,
        "commune": job.location.commune,
        "category": job.category,
        "employment_type": job.employment_type,
        "work_mode": job.work_mode,
        "experience_level": job.experience_level,
    }
    checks = {
        name: field_filter.matches(job_values[name])
        for name, field_filter in subscription.field_filters().items()
    }
    checks["salary"] = salary_matches(
        subscription.salary_bucket, job.min_salary, job.max_salary
    )
    return checks


def passes_hard_filter(job: Job, subscription: Subscription) -> bool:
    return all(filter_checks(job, subscription).values())
