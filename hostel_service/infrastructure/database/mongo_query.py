"""
Translation of compiled queries into MongoDB filters and sort specs
"""
from typing import Any, Dict, List, Optional, Tuple

from ...application.query_builder import Clause, Operator, OrderBy, Query
from .cursors import decode_cursor


def compile_clause(clause: Clause) -> Dict[str, Any]:
    if clause.op == Operator.EQ:
        return {clause.field: clause.value}
    if clause.op == Operator.IN:
        return {clause.field: {"$in": list(clause.value)}}
    if clause.op == Operator.GTE:
        return {clause.field: {"$gte": clause.value}}
    if clause.op == Operator.LTE:
        return {clause.field: {"$lte": clause.value}}
    if clause.op == Operator.ARRAY_CONTAINS_ANY:
        # $in against an array field matches when any element is listed
        return {clause.field: {"$in": list(clause.value)}}
    raise ValueError(f"Unsupported operator: {clause.op}")


def compile_sort(order: OrderBy) -> List[Tuple[str, int]]:
    """Primary ordering plus _id as the store's implicit tiebreak"""
    return [(order.field, -1 if order.descending else 1), ("_id", 1)]


def cursor_filter(order: OrderBy, cursor: str) -> Dict[str, Any]:
    """Documents strictly after the cursor position in sort order"""
    value, last_id = decode_cursor(cursor)
    same_value_later = {order.field: value, "_id": {"$gt": last_id}}
    if value is None:
        # nulls sort first ascending and last descending
        if order.descending:
            return same_value_later
        return {"$or": [same_value_later, {order.field: {"$ne": None}}]}
    beyond = "$lt" if order.descending else "$gt"
    return {"$or": [{order.field: {beyond: value}}, same_value_later]}


def compile_query(query: Query, cursor: Optional[str] = None) -> Dict[str, Any]:
    """Full filter document for a query page"""
    parts = [compile_clause(c) for c in query.clauses]
    if cursor:
        parts.append(cursor_filter(query.order, cursor))
    if not parts:
        return {}
    if len(parts) == 1:
        return parts[0]
    return {"$and": parts}
