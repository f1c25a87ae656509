from typing import List, Optional

from RTN import parse, title_match

from trawler.models import Candidate


def filter_worker(
    candidates: List[Candidate],
    title: str,
    year: Optional[int],
    remove_adult_content: bool,
) -> List[Candidate]:
    """Drop movie releases whose parsed title or year does not fit the request."""
    results = []
    for candidate in candidates:
        candidate_title = candidate.title
        if "sample" in candidate_title.lower() or candidate_title == "":
            continue

        parsed = parse(candidate_title)

        if remove_adult_content and parsed.adult:
            continue

        if not parsed.parsed_title or not title_match(title, parsed.parsed_title):
            continue

        if year and parsed.year:
            if year < (parsed.year - 1) or year > (parsed.year + 1):
                continue

        results.append(candidate)
    return results
