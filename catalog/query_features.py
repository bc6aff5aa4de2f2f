"""
Query feature builder: turns raw query-string parameters into a MongoDB
query plan (filter, sort, field selection, pagination).

Only allow-listed fields can be filtered, sorted or selected. Comparison
filters use the bracket encoding `field[op]=value`, e.g.
`publishedYear[gte]=1950` becomes `{"published_year": {"$gte": 1950}}`.
"""

import re
from datetime import datetime, timezone
from typing import Any, Dict, FrozenSet, Iterable, List, Mapping, NamedTuple, Optional, Tuple, Union

from bson import ObjectId
import structlog
from motor.motor_asyncio import AsyncIOMotorCollection
from pydantic import BaseModel, Field
from pymongo import ASCENDING, DESCENDING

from .database import to_object_id
from .errors import ValidationFailure

logger = structlog.get_logger(__name__)

RESERVED_PARAMS = frozenset({"page", "sort", "limit", "fields"})
COMPARISON_OPERATORS = frozenset({"gt", "gte", "lt", "lte"})

_PARAM_KEY = re.compile(r"^(?P<field>[A-Za-z_][A-Za-z0-9_]*)(?:\[(?P<operator>[A-Za-z]+)\])?$")

QueryParams = Union[Mapping[str, Any], Iterable[Tuple[str, Any]]]


class QueryField(NamedTuple):
    """
    A queryable field: stored name, value type and allowed comparison operators.
    Fields that are not filterable can only be selected, never filtered or sorted on.
    """
    name: str
    type: type
    operators: FrozenSet[str] = frozenset()
    filterable: bool = True


BOOK_QUERY_FIELDS: Dict[str, QueryField] = {
    "title": QueryField("title", str),
    "author": QueryField("author", str),
    "genre": QueryField("genre", str),
    "publisher": QueryField("publisher", str),
    "isbn": QueryField("isbn", str),
    "featured": QueryField("featured", bool),
    "publishedYear": QueryField("published_year", int, COMPARISON_OPERATORS),
    "averageRating": QueryField("average_rating", float, COMPARISON_OPERATORS),
    "ratingCount": QueryField("rating_count", int, COMPARISON_OPERATORS),
    "totalRating": QueryField("total_rating", int, COMPARISON_OPERATORS),
    "createdAt": QueryField("created_at", datetime, COMPARISON_OPERATORS),
    "createdBy": QueryField("created_by", ObjectId),
    # Projection only
    "description": QueryField("description", str, filterable=False),
    "coverImage": QueryField("cover_image", str, filterable=False),
}

_TRUE_VALUES = {"true", "1", "yes"}
_FALSE_VALUES = {"false", "0", "no"}


def _iter_params(params: QueryParams) -> List[Tuple[str, Any]]:
    """Flatten a mapping (possibly holding lists) or a list of pairs into pairs."""
    items = params.items() if isinstance(params, Mapping) else params
    pairs = []
    for key, value in items:
        if isinstance(value, (list, tuple)):
            pairs.extend((key, item) for item in value)
        else:
            pairs.append((key, value))
    return pairs


def _parse_positive_int(value: Any, default: int) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError):
        return default
    return number if number >= 1 else default


def coerce_value(field: QueryField, value: Any, param: str) -> Any:
    """
    Convert a query-string value to the field's type.

    Raises:
        ValidationFailure: If the value cannot be converted
    """
    if not isinstance(value, str):
        return value

    try:
        if field.type is bool:
            lowered = value.strip().lower()
            if lowered in _TRUE_VALUES:
                return True
            if lowered in _FALSE_VALUES:
                return False
            raise ValueError(value)
        if field.type is int:
            return int(value)
        if field.type is float:
            return float(value)
        if field.type is ObjectId:
            return to_object_id(value)
        if field.type is datetime:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
            if parsed.tzinfo is not None:
                # Stored timestamps are naive UTC
                parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
            return parsed
    except ValueError:
        raise ValidationFailure(f"Invalid value for {param}: {value}")

    return value


class QueryPlan(BaseModel):
    """
    A composed, not yet executed, query against one collection.
    """
    filter: Dict[str, Any] = Field(default_factory=dict, description="MongoDB filter document")
    sort: List[Tuple[str, int]] = Field(default_factory=list, description="Sort keys and directions")
    projection: Optional[Dict[str, int]] = Field(None, description="Field projection, None for all fields")
    page: int = Field(1, ge=1, description="Page number")
    limit: int = Field(10, ge=1, description="Items per page")

    @property
    def skip(self) -> int:
        return (self.page - 1) * self.limit

    async def execute(self, collection: AsyncIOMotorCollection) -> Tuple[List[Dict[str, Any]], int]:
        """
        Run the plan: one paginated find and one unpaginated count with the same filter.

        Args:
            collection: Target collection

        Returns:
            Tuple of (documents on the requested page, total matching documents)
        """
        cursor = collection.find(self.filter, self.projection)
        if self.sort:
            cursor = cursor.sort(self.sort)
        cursor = cursor.skip(self.skip).limit(self.limit)
        documents = await cursor.to_list(length=self.limit)

        total = await collection.count_documents(self.filter)

        logger.debug(
            "Executed query plan",
            collection=collection.name,
            filter=str(self.filter),
            page=self.page,
            limit=self.limit,
            results=len(documents),
            total=total
        )
        return documents, total


class QueryFeatures:
    """
    Builds QueryPlans from request parameters for a set of allow-listed fields.
    """

    def __init__(
        self,
        fields: Mapping[str, QueryField],
        default_sort: str = "-createdAt",
        default_limit: int = 10,
        max_limit: Optional[int] = None
    ):
        """
        Args:
            fields: Public field name to QueryField
            default_sort: Sort expression used when none is requested
            default_limit: Page size used when none is requested
            max_limit: Optional cap on the page size, None for no cap
        """
        self.fields = dict(fields)
        self._lookup = dict(self.fields)
        for field in fields.values():
            self._lookup.setdefault(field.name, field)
        self.default_sort = default_sort
        self.default_limit = default_limit
        self.max_limit = max_limit

    def _field(self, name: str, purpose: str) -> QueryField:
        field = self._lookup.get(name)
        if field is None or (purpose != "selection" and not field.filterable):
            raise ValidationFailure(f"Invalid {purpose} field: {name}")
        return field

    def filter(self, params: QueryParams) -> Dict[str, Any]:
        """
        Build the filter document from every non-reserved parameter.

        Equality parameters repeated with several values become `$in`
        membership; `field[op]` parameters become comparison operators.
        """
        equality: Dict[str, List[Any]] = {}
        comparisons: Dict[str, Dict[str, Any]] = {}

        for key, value in _iter_params(params):
            if key in RESERVED_PARAMS:
                continue

            match = _PARAM_KEY.match(key)
            if not match:
                raise ValidationFailure(f"Invalid filter parameter: {key}")

            field = self._field(match.group("field"), "filter")
            operator = match.group("operator")
            coerced = coerce_value(field, value, key)

            if operator is None:
                equality.setdefault(field.name, []).append(coerced)
                continue

            operator = operator.lower()
            if operator not in COMPARISON_OPERATORS or operator not in field.operators:
                raise ValidationFailure(f"Operator '{operator}' is not supported for {match.group('field')}")
            comparisons.setdefault(field.name, {})[f"${operator}"] = coerced

        query: Dict[str, Any] = dict(comparisons)
        for name, values in equality.items():
            if len(values) == 1:
                condition = values[0]
            else:
                condition = {"$in": values}

            if name in query:
                if isinstance(condition, dict):
                    query[name].update(condition)
                else:
                    query[name]["$eq"] = condition
            else:
                query[name] = condition

        return query

    def sort(self, expression: Optional[str]) -> List[Tuple[str, int]]:
        """
        Parse a comma-separated sort expression, `-` prefix for descending.

        `_id` is appended as the final key so pages are stable when the
        requested keys tie.
        """
        keys: List[Tuple[str, int]] = []
        for token in (expression or self.default_sort).split(","):
            token = token.strip()
            if not token:
                continue
            direction = ASCENDING
            if token.startswith("-"):
                direction = DESCENDING
                token = token[1:]

            if token in ("id", "_id"):
                name = "_id"
            else:
                name = self._field(token, "sort").name

            if name not in (key for key, _ in keys):
                keys.append((name, direction))

        if not keys:
            return self.sort(self.default_sort)

        if "_id" not in (key for key, _ in keys):
            keys.append(("_id", keys[0][1]))
        return keys

    def limit_fields(self, expression: Optional[str]) -> Optional[Dict[str, int]]:
        """
        Parse a comma-separated field selection.

        Either all fields are inclusions or all are `-` prefixed exclusions.
        The document id is always returned.
        """
        if not expression:
            return None

        projection: Dict[str, int] = {}
        for token in expression.split(","):
            token = token.strip()
            if not token:
                continue
            include = 1
            if token.startswith("-"):
                include = 0
                token = token[1:]
            if token in ("id", "_id"):
                continue
            projection[self._field(token, "selection").name] = include

        if not projection:
            return None
        if len(set(projection.values())) > 1:
            raise ValidationFailure("Cannot mix field inclusion and exclusion")
        return projection

    def paginate(self, page: Any, limit: Any) -> Tuple[int, int]:
        """Parse page and limit, falling back to defaults for absent or invalid values."""
        page_number = _parse_positive_int(page, 1)
        page_size = _parse_positive_int(limit, self.default_limit)

        if self.max_limit is not None and page_size > self.max_limit:
            logger.warning("Page limit clamped", requested=page_size, max_limit=self.max_limit)
            page_size = self.max_limit

        return page_number, page_size

    def build(
        self,
        params: QueryParams,
        base_filter: Optional[Dict[str, Any]] = None,
        limit: Optional[int] = None
    ) -> QueryPlan:
        """
        Compose a QueryPlan from request parameters.

        Args:
            params: Raw query parameters (mapping or list of pairs)
            base_filter: Fixed conditions that override request filters
            limit: Fixed page size that overrides the requested one

        Returns:
            QueryPlan ready to execute
        """
        pairs = _iter_params(params)
        reserved = {key: value for key, value in pairs if key in RESERVED_PARAMS}

        query = self.filter(pairs)
        if base_filter:
            query.update(base_filter)

        page, page_size = self.paginate(reserved.get("page"), reserved.get("limit"))
        if limit is not None:
            page_size = limit

        return QueryPlan(
            filter=query,
            sort=self.sort(reserved.get("sort")),
            projection=self.limit_fields(reserved.get("fields")),
            page=page,
            limit=page_size
        )
