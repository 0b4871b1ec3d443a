"""
Query builder - compiles a FilterModel and SortOption into store predicates

The output is a plain, store-neutral description (clauses plus one
ordering). Store adapters translate it; ``evaluate`` gives the reference
matching semantics used by the in-memory store.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Tuple

from ..domain.filters import FilterModel, GenderFilter, SortOption


class Operator(str, Enum):
    """Predicate operators supported by the document store"""
    EQ = "=="
    IN = "in"
    GTE = ">="
    LTE = "<="
    ARRAY_CONTAINS_ANY = "array-contains-any"


@dataclass(frozen=True)
class Clause:
    """Single predicate on a (possibly dotted) document field"""
    field: str
    op: Operator
    value: Any


@dataclass(frozen=True)
class OrderBy:
    """Ordering on one field"""
    field: str
    descending: bool = True


@dataclass(frozen=True)
class Query:
    """Compiled query: conjunction of clauses plus exactly one ordering"""
    clauses: Tuple[Clause, ...]
    order: OrderBy


SORT_ORDERS: Dict[SortOption, OrderBy] = {
    SortOption.RATING_DESC: OrderBy("average_rating", descending=True),
    SortOption.PRICE_ASC: OrderBy("price_range.min", descending=False),
    SortOption.PRICE_DESC: OrderBy("price_range.max", descending=True),
    SortOption.NEWEST: OrderBy("created_at", descending=True),
    SortOption.POPULARITY: OrderBy("views", descending=True),
}


def build_query(filters: FilterModel, sort: SortOption) -> Query:
    """
    Compile filters and sort into a Query.

    A clause is emitted only for a present, non-vacuous field. Price is a
    range-overlap test: a hostel matches when its [min, max] intersects the
    requested [price_min, price_max]. Amenities match when the hostel offers
    any of the requested tags.
    """
    clauses = []
    if filters.gender != GenderFilter.ALL:
        clauses.append(Clause("gender", Operator.EQ, filters.gender.value))
    if filters.location:
        clauses.append(Clause("location", Operator.IN, tuple(sorted(filters.location))))
    if filters.verified_only:
        clauses.append(Clause("verified", Operator.EQ, True))
    if filters.featured_only:
        clauses.append(Clause("featured", Operator.EQ, True))
    if filters.price_min is not None and filters.price_min > 0:
        clauses.append(Clause("price_range.max", Operator.GTE, filters.price_min))
    if filters.price_max is not None:
        clauses.append(Clause("price_range.min", Operator.LTE, filters.price_max))
    if filters.amenities:
        clauses.append(Clause(
            "amenities",
            Operator.ARRAY_CONTAINS_ANY,
            tuple(sorted(a.value for a in filters.amenities)),
        ))
    if filters.min_rating:
        clauses.append(Clause("average_rating", Operator.GTE, filters.min_rating))
    return Query(clauses=tuple(clauses), order=SORT_ORDERS[SortOption(sort)])


def review_query(hostel_id: str) -> Query:
    """Newest-first reviews of one hostel"""
    return Query(
        clauses=(Clause("hostel_id", Operator.EQ, hostel_id),),
        order=OrderBy("created_at", descending=True),
    )


MISSING = object()


def get_field(document: Dict[str, Any], path: str, default: Any = MISSING) -> Any:
    """Resolve a dotted path inside a document"""
    value: Any = document
    for part in path.split("."):
        if not isinstance(value, dict) or part not in value:
            return default
        value = value[part]
    return value


def _matches(document: Dict[str, Any], clause: Clause) -> bool:
    value = get_field(document, clause.field)
    if value is MISSING or value is None:
        return False
    try:
        if clause.op == Operator.EQ:
            return value == clause.value
        if clause.op == Operator.IN:
            return value in clause.value
        if clause.op == Operator.GTE:
            return value >= clause.value
        if clause.op == Operator.LTE:
            return value <= clause.value
        if clause.op == Operator.ARRAY_CONTAINS_ANY:
            return isinstance(value, (list, tuple)) and any(v in value for v in clause.value)
    except TypeError:
        # incomparable types never match, as in the store
        return False
    raise ValueError(f"Unsupported operator: {clause.op}")


def evaluate(document: Dict[str, Any], query: Query) -> bool:
    """True when the document satisfies every clause of the query"""
    return all(_matches(document, clause) for clause in query.clauses)


def describe(query: Query) -> str:
    """Human readable form, used in debug logs"""
    parts = [f"{c.field} {c.op.value} {c.value!r}" for c in query.clauses]
    direction = "desc" if query.order.descending else "asc"
    where = " AND ".join(parts) if parts else "*"
    return f"{where} ORDER BY {query.order.field} {direction}"
