"""
Helpers for walking paginated repository responses
"""

import logging
import math
from typing import Callable, List, TypeVar

from slot_engine.models import Page

logger = logging.getLogger(__name__)

T = TypeVar("T")


def fetch_all_pages(fetch_page: Callable[[int, int], Page[T]], page_size: int = 100) -> List[T]:
    """
    Load every page of a paginated query.

    Args:
        fetch_page: Callable taking (page_index, page_size), pages are 1-based
        page_size: Items requested per page

    Returns:
        All items across all pages, in page order

    Paging stops at total_pages when the store reports it, otherwise at
    ceil(total_count / page_size), otherwise at the first short page.
    """
    items: List[T] = []
    page_index = 1
    total_pages = 0

    while True:
        page = fetch_page(page_index, page_size)
        items.extend(page.items)

        if page_index == 1:
            total_pages = page.total_pages or 0
            if not total_pages and page.total_count:
                total_pages = math.ceil(page.total_count / page_size)

        if total_pages > 0:
            if page_index >= total_pages:
                break
        elif len(page.items) < page_size:
            break
        page_index += 1

    logger.debug(f"Fetched {len(items)} items over {page_index} page(s)")
    return items
