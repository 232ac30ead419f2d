"""Job categories for the open/close shop login workflow."""

import logging
from typing import Optional

from hatchery.storage.models import Job

logger = logging.getLogger(__name__)

OPEN_SHOP = "open_shop"
CLOSE_SHOP = "close_shop"
REGULAR = "regular"

CATEGORY_KEYWORDS: dict[str, list[str]] = {
    OPEN_SHOP: ["open shop", "open", "start"],
    CLOSE_SHOP: ["close shop", "close up shop", "close", "end", "shutdown"],
}


def infer_categories(name: str, keywords: Optional[dict[str, list[str]]] = None) -> set[str]:
    """Categories whose keywords appear in ``name`` (case-insensitive substring)."""
    keywords = keywords if keywords is not None else CATEGORY_KEYWORDS
    lowered = (name or "").lower()
    return {
        category
        for category, words in keywords.items()
        if any(word.lower() in lowered for word in words)
    }


def job_categories(job: Job, keywords: Optional[dict[str, list[str]]] = None) -> set[str]:
    """Categories a job belongs to; an explicit ``category`` overrides the name."""
    if job.category:
        return set() if job.category == REGULAR else {job.category}

    found = infer_categories(job.name, keywords)
    if len(found) > 1:
        logger.warning(
            "Job %r matches several categories (%s); set an explicit category",
            job.name, ", ".join(sorted(found)),
        )
    return found


def is_regular_job(job: Job, keywords: Optional[dict[str, list[str]]] = None) -> bool:
    return not job_categories(job, keywords)
