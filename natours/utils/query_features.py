"""Translate list-endpoint query strings into parameterized SQL.

``?difficulty=easy&price[lt]=1500&sort=-price&fields=name,price&page=2&limit=10``
becomes a WHERE / ORDER BY / LIMIT clause over a whitelist of columns, with
every value passed to asyncpg as a positional parameter.
"""

import re
from collections import OrderedDict
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from pydantic.alias_generators import to_camel

from natours.utils.app_error import AppError

OPERATORS = {"gte": ">=", "gt": ">", "lte": "<=", "lt": "<"}
RESERVED_PARAMS = ("page", "sort", "limit", "fields")
FILTER_PATTERN = re.compile(r"^(\w+)\[(gte|gt|lte|lt)\]$")
DEFAULT_LIMIT = 100


def parse_timestamp(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def camelize(row) -> Dict[str, Any]:
    result = {}
    for key, value in dict(row).items():
        if isinstance(value, Decimal):
            value = float(value)
        result[to_camel(key)] = value
    return result


class QueryFeatures:
    def __init__(
        self,
        query_items: Iterable[Tuple[str, str]],
        columns: Dict[str, Tuple[str, Optional[Callable]]],
        default_sort: str = "-createdAt",
    ):
        self.params = OrderedDict()
        for key, value in query_items:
            self.params.setdefault(key, []).append(value)
        self.columns = columns
        self.default_sort = default_sort
        self.conditions: List[str] = []
        self.values: List[Any] = []
        self.order_by = ""
        self.select = "*"
        self.limit_clause = ""
        self.projected = False

    def column(self, field: str) -> Tuple[str, Optional[Callable]]:
        if field not in self.columns:
            raise AppError(f"Invalid query field: {field}", 400)
        return self.columns[field]

    def comparable_column(self, field: str) -> Tuple[str, Callable]:
        column, kind = self.column(field)
        # Array columns can be projected but not filtered or sorted on.
        if kind is None:
            raise AppError(f"Cannot filter or sort by {field}", 400)
        return column, kind

    def convert(self, field: str, value: str, kind: Callable):
        try:
            return kind(value)
        except (ValueError, ArithmeticError):
            raise AppError(f"Invalid value for {field}: {value}", 400)

    def add_value(self, value) -> str:
        self.values.append(value)
        return f"${len(self.values)}"

    def where(self, condition: str, *values):
        placeholders = [self.add_value(value) for value in values]
        self.conditions.append(condition.format(*placeholders))
        return self

    def filter(self):
        for key, raw_values in self.params.items():
            if key in RESERVED_PARAMS:
                continue
            match = FILTER_PATTERN.match(key)
            if match:
                field, operator = match.groups()
                column, kind = self.comparable_column(field)
                value = self.convert(field, raw_values[-1], kind)
                self.conditions.append(f"{column} {OPERATORS[operator]} {self.add_value(value)}")
                continue
            column, kind = self.comparable_column(key)
            values = [self.convert(key, value, kind) for value in raw_values]
            if len(values) == 1:
                self.conditions.append(f"{column} = {self.add_value(values[0])}")
            else:
                self.conditions.append(f"{column} = ANY({self.add_value(values)})")
        return self

    def sort(self):
        sort_by = self.params.get("sort", [self.default_sort])[-1]
        clauses = []
        for field in sort_by.split(","):
            field = field.strip()
            if not field:
                continue
            direction = "DESC" if field.startswith("-") else "ASC"
            column, _ = self.comparable_column(field.lstrip("-"))
            clauses.append(f"{column} {direction}")
        clauses.append("id ASC")
        self.order_by = " ORDER BY " + ", ".join(clauses)
        return self

    def limit_fields(self):
        fields = self.params.get("fields")
        if fields:
            columns = ["id"]
            for field in fields[-1].split(","):
                field = field.strip()
                if field:
                    column, _ = self.column(field)
                    if column not in columns:
                        columns.append(column)
            self.select = ", ".join(columns)
            self.projected = True
        return self

    def paginate(self):
        page = self.convert("page", self.params.get("page", ["1"])[-1], int)
        limit = self.convert("limit", self.params.get("limit", [str(DEFAULT_LIMIT)])[-1], int)
        if page < 1 or limit < 1:
            raise AppError("page and limit must be positive integers", 400)
        self.limit_clause = f" LIMIT {self.add_value(limit)} OFFSET {self.add_value((page - 1) * limit)}"
        return self

    def build(self, table: str) -> Tuple[str, List[Any]]:
        query = f"SELECT {self.select} FROM {table}"
        if self.conditions:
            query += " WHERE " + " AND ".join(self.conditions)
        return query + self.order_by + self.limit_clause, self.values


def build_update(
    table: str,
    fields: Dict[str, Any],
    record_id: int,
    returning: str = "*",
    touch: Optional[str] = None,
) -> Optional[Tuple[str, List[Any]]]:
    if not fields:
        return None
    assignments = []
    values: List[Any] = []
    for index, (column, value) in enumerate(fields.items(), start=1):
        assignments.append(f"{column} = ${index}")
        values.append(value)
    if touch:
        assignments.append(f"{touch} = NOW()")
    values.append(record_id)
    query = f"UPDATE {table} SET {', '.join(assignments)} WHERE id = ${len(values)} RETURNING {returning}"
    return query, values
