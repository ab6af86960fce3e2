import math
import re
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict
from pymongo import ASCENDING, DESCENDING

from docrepo.domain.models import ListOptions, Page
from docrepo.infrastructure.identifiers import ID_FIELD, KEY_FIELD

MAX_LIMIT = 50
DEFAULT_PAGE = 1

_TOKEN_SEPARATOR = re.compile(r"[\s,]+")


class ListQuery(BaseModel):
    """Bounded parameters of a list request, ready to hand to the store."""
    model_config = ConfigDict(frozen=True)

    limit: int
    page: int
    skip: int
    sort: List[Tuple[str, int]]
    projection: Optional[Dict[str, int]] = None


def _tokens(expression: str) -> List[str]:
    return [token for token in _TOKEN_SEPARATOR.split(expression.strip()) if token]


def rewrite_sort(sort: Optional[str]) -> str:
    """
    Defaults the sort to the public identifier and swaps every `id` token
    for the store key, unless the expression already names the store key.
    """
    if not sort or not _tokens(sort):
        sort = ID_FIELD

    tokens = _tokens(sort)
    names = [token.lstrip("-") for token in tokens]
    if ID_FIELD not in names or KEY_FIELD in names:
        return sort

    rewritten = []
    for token in tokens:
        descending = token.startswith("-")
        if token.lstrip("-") == ID_FIELD:
            token = f"{'-' if descending else ''}{KEY_FIELD}"
        rewritten.append(token)
    return " ".join(rewritten)


def parse_sort(sort: str) -> List[Tuple[str, int]]:
    """
    Converts a sort expression such as "-stars name" into the driver's
    list of (field, direction) pairs.
    """
    return [
        (token[1:], DESCENDING) if token.startswith("-") else (token, ASCENDING)
        for token in _tokens(sort)
        if token.lstrip("-")
    ]


def select_fields(fields: Optional[str]) -> Optional[Dict[str, int]]:
    """
    Converts comma-joined field names into a projection document.
    A leading "-" excludes the field. Returns None to select everything.
    """
    if not fields:
        return None

    projection = {}
    for name in _tokens(fields.replace(",", " ")):
        if name.startswith("-"):
            if name[1:]:
                projection[name[1:]] = 0
        else:
            projection[name] = 1
    return projection or None


def clamp_limit(limit: Optional[int]) -> int:
    if limit is None or limit < 1 or limit > MAX_LIMIT:
        return MAX_LIMIT
    return limit


def clamp_page(page: Optional[int]) -> int:
    if page is None or page < DEFAULT_PAGE:
        return DEFAULT_PAGE
    return page


def build_list_query(options: Optional[ListOptions] = None) -> ListQuery:
    """
    Resolves partially specified list options into bounded store parameters.

    Args:
        options (Optional[ListOptions]): The caller's options, if any.

    Returns:
        ListQuery: Clamped limit and page, the derived skip, the parsed sort and
        the projection (None when all fields are selected).
    """
    options = options or ListOptions()

    limit = clamp_limit(options.limit)
    page = clamp_page(options.page)

    return ListQuery(
        limit=limit,
        page=page,
        skip=limit * (page - 1),
        sort=parse_sort(rewrite_sort(options.sort)),
        projection=select_fields(options.fields),
    )


def build_page(total: int, query: ListQuery, data: List[Any]) -> Page:
    """Wraps one fetched page in the envelope returned to callers."""
    return Page(
        total=total,
        limit=query.limit,
        page=query.page,
        total_pages=math.ceil(total / query.limit),
        data=data,
    )
