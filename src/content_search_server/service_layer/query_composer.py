"""Query composition: loosely typed request parameters to a ``SearchSpec``.

Query strings deliver everything as text (``"20"``, ``"fast,cheap"``) while
JSON bodies deliver native values. Both go through the same parsers here so
the rest of the service only ever sees a validated, immutable ``SearchSpec``.
Malformed input fails fast with ``ValidationError``.

Free text is translated into an FTS5 match expression:

- bare words are OR-ed (any of them matches),
- ``"quoted phrases"`` are required (AND-ed) and, when present, bare words
  no longer widen the match,
- ``-word`` excludes records containing that word.
"""

from collections.abc import Mapping
import logging
import re
from typing import Any, cast, get_args

from content_search_server.domain.model import CONTENT_TYPES, SENTIMENTS
from content_search_server.domain.search import (
    SearchFilters,
    SearchSpec,
    SortField,
    SortKey,
    SortOrder,
    SortSelection,
)
from content_search_server.errors import ValidationError


logger = logging.getLogger(__name__)

SORT_FIELDS: tuple[str, ...] = get_args(SortField)
SORT_ORDERS: tuple[str, ...] = get_args(SortOrder)

# The advanced body historically names the date sort after its column.
_SORT_FIELD_SYNONYMS = {"indexedAt": "date", "indexed_at": "date"}

_QUERY_TOKEN_RE = re.compile(r'"([^"]*)"|(-?)([^\s"]+)')
_WORD_CHAR_RE = re.compile(r"\w", flags=re.UNICODE)
_INT_RE = re.compile(r"^[+-]?\d+$")


def _fts_string(text: str) -> str:
    return '"' + text.replace('"', '""') + '"'


def build_match_expression(query: str) -> str:
    """Translate free text into an FTS5 MATCH expression.

    Raises:
        ValidationError: if the text holds no searchable (positive) term.
    """
    words: list[str] = []
    phrases: list[str] = []
    excluded: list[str] = []
    for phrase, sign, word in _QUERY_TOKEN_RE.findall(query):
        candidate = phrase or word
        if not _WORD_CHAR_RE.search(candidate):
            continue
        if phrase:
            phrases.append(" ".join(phrase.split()))
        elif sign:
            excluded.append(word)
        elif word not in words:
            words.append(word)

    if phrases:
        positive = " AND ".join(_fts_string(p) for p in phrases)
    elif words:
        positive = " OR ".join(_fts_string(w) for w in words)
        if len(words) > 1:
            positive = f"({positive})"
    else:
        raise ValidationError("Search query must contain at least one searchable term")

    for word in excluded:
        positive += f" NOT {_fts_string(word)}"
    return positive


def optional_str(value: Any, *, name: str) -> str | None:
    """Return a stripped string, or None when absent or blank."""
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValidationError(f"{name} must be a string")
    if isinstance(value, int):
        value = str(value)
    if not isinstance(value, str):
        raise ValidationError(f"{name} must be a string")
    stripped = value.strip()
    return stripped or None


def parse_int(
    value: Any,
    *,
    name: str,
    default: int | None,
    minimum: int | None = None,
    maximum: int | None = None,
) -> int | None:
    """Parse an integer parameter, enforcing optional bounds.

    ``None`` and blank strings yield ``default``. ``"12abc"``, ``"1.5"`` and
    booleans are rejected rather than truncated.
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        return default
    if isinstance(value, bool):
        raise ValidationError(f"Invalid {name}: expected an integer")
    if isinstance(value, int):
        parsed = value
    elif isinstance(value, float) and value.is_integer():
        parsed = int(value)
    elif isinstance(value, str) and _INT_RE.match(value.strip()):
        parsed = int(value.strip())
    else:
        raise ValidationError(f"Invalid {name}: expected an integer")

    if minimum is not None and parsed < minimum:
        raise ValidationError(f"Invalid {name}: must be at least {minimum}")
    if maximum is not None and parsed > maximum:
        raise ValidationError(f"Invalid {name}: must be at most {maximum}")
    return parsed


def parse_list(value: Any, *, name: str) -> tuple[str, ...]:
    """Parse a comma-joined string or a list of strings into a tuple."""
    if value is None:
        return ()
    if isinstance(value, str):
        items = value.split(",")
    elif isinstance(value, (list, tuple)):
        items = list(value)
    else:
        raise ValidationError(f"{name} must be a comma-separated string or a list of strings")

    parsed: list[str] = []
    for item in items:
        if not isinstance(item, str):
            raise ValidationError(f"{name} must contain only strings")
        stripped = item.strip()
        if stripped and stripped not in parsed:
            parsed.append(stripped)
    return tuple(parsed)


def parse_choice(value: Any, *, name: str, choices: tuple[str, ...]) -> str | None:
    """Parse an optional enumerated value."""
    parsed = optional_str(value, name=name)
    if parsed is None:
        return None
    if parsed not in choices:
        raise ValidationError(f"Invalid {name} '{parsed}'; expected one of: {', '.join(choices)}")
    return parsed


def resolve_sort(
    sort_by: str | None,
    sort_order: str | None,
    *,
    has_query: bool,
    default_field: str | None = None,
) -> tuple[SortSelection, tuple[SortKey, ...]]:
    """Pick the sort strategy and expand it into ordered sort keys.

    - relevance: score desc, then indexedAt desc (falls back to date desc
      when there is no free-text query to score against)
    - rating: metadata.rating in the requested direction, then indexedAt desc
    - date: indexedAt in the requested direction
    """
    field = sort_by or default_field or ("relevance" if has_query else "date")
    field = _SORT_FIELD_SYNONYMS.get(field, field)
    if field not in SORT_FIELDS:
        raise ValidationError(f"Invalid sortBy '{field}'; expected one of: {', '.join(SORT_FIELDS)}")

    order = (sort_order or "desc").lower()
    if order not in SORT_ORDERS:
        raise ValidationError(f"Invalid sortOrder '{sort_order}'; expected one of: {', '.join(SORT_ORDERS)}")

    if field == "relevance" and not has_query:
        logger.debug("Relevance sort requested without a query; using date ordering")
        field, order = "date", "desc"

    descending = order == "desc"
    if field == "relevance":
        keys = (SortKey(column="score"), SortKey(column="indexedAt"))
        order = "desc"
    elif field == "rating":
        keys = (SortKey(column="metadata.rating", descending=descending), SortKey(column="indexedAt"))
    else:
        keys = (SortKey(column="indexedAt", descending=descending),)
    return SortSelection(field=field, order=order), keys


class QueryComposer:
    """Builds ``SearchSpec`` objects from request parameters.

    Stateless apart from the page size policy, so one instance serves every
    request.
    """

    def __init__(self, *, default_page_size: int = 50, max_page_size: int = 200) -> None:
        if default_page_size > max_page_size:
            raise ValueError("default_page_size must not exceed max_page_size")
        self.default_page_size = default_page_size
        self.max_page_size = max_page_size

    def parse_limit(self, value: Any, *, default: int) -> int:
        """Parse a page size within ``1..max_page_size``."""
        limit = parse_int(value, name="limit", default=default, minimum=1, maximum=self.max_page_size)
        return cast(int, limit)

    def compose(
        self,
        params: Mapping[str, Any],
        *,
        content_type: str | None = None,
        default_sort: str | None = None,
    ) -> SearchSpec:
        """Compose a ``SearchSpec`` from flat parameters (query string or flattened body).

        Args:
            params: Raw parameters; ``q`` and ``query`` are both accepted
            content_type: Forces the content type filter (path parameter)
            default_sort: Sort field used when ``sortBy`` is absent

        Raises:
            ValidationError: on missing discriminator or malformed values
        """
        query = optional_str(params.get("q"), name="q") or optional_str(params.get("query"), name="query")
        filters = SearchFilters(
            business_id=optional_str(params.get("businessId"), name="businessId"),
            franchise_id=optional_str(params.get("franchiseId"), name="franchiseId"),
            content_type=parse_choice(
                content_type if content_type is not None else params.get("contentType"),
                name="contentType",
                choices=CONTENT_TYPES,
            ),
            tags=parse_list(params.get("tags"), name="tags"),
            categories=parse_list(params.get("categories"), name="categories"),
            rating=parse_int(params.get("rating"), name="rating", default=None, minimum=1, maximum=5),
            sentiment=parse_choice(params.get("sentiment"), name="sentiment", choices=SENTIMENTS),
            language=optional_str(params.get("language"), name="language"),
        )

        if query is None and filters.business_id is None:
            raise ValidationError("Search query or businessId is required")

        match_expression = build_match_expression(query) if query is not None else None
        sort, sort_keys = resolve_sort(
            optional_str(params.get("sortBy"), name="sortBy"),
            optional_str(params.get("sortOrder"), name="sortOrder"),
            has_query=match_expression is not None,
            default_field=default_sort,
        )

        limit = self.parse_limit(params.get("limit"), default=self.default_page_size)
        offset = parse_int(params.get("offset"), name="offset", default=0, minimum=0)

        return SearchSpec(
            query=query,
            match_expression=match_expression,
            filters=filters,
            sort=sort,
            sort_keys=sort_keys,
            limit=limit,
            offset=offset,
        )

    def compose_advanced(self, body: Any) -> SearchSpec:
        """Compose a ``SearchSpec`` from the structured advanced-search body.

        Body shape: ``{query, filters: {...}, pagination: {limit, offset},
        sort: {field, order}}``. Without an explicit sort field the results
        are ordered by ``indexedAt`` descending.
        """
        if not isinstance(body, Mapping):
            raise ValidationError("Request body must be a JSON object")

        filters = _mapping_section(body, "filters")
        pagination = _mapping_section(body, "pagination")
        sort = _mapping_section(body, "sort")

        params: dict[str, Any] = {key: value for key, value in filters.items() if key not in ("q", "query")}
        params.update(
            {
                "query": body.get("query"),
                "limit": pagination.get("limit"),
                "offset": pagination.get("offset"),
                "sortBy": sort.get("field"),
                "sortOrder": sort.get("order"),
            }
        )
        return self.compose(params, default_sort="date")


def _mapping_section(body: Mapping[str, Any], key: str) -> Mapping[str, Any]:
    section = body.get(key)
    if section is None:
        return {}
    if not isinstance(section, Mapping):
        raise ValidationError(f"{key} must be a JSON object")
    return section
