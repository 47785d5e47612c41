# update_builder.py
# Description: Structured builder for parameterised UPDATE statements over whitelisted columns.
#
# Imports
from typing import Any, Dict, Iterable, List, Optional, Tuple
#
# Local Imports
#
########################################################################################################################
#
# Functions:

class UpdateBuilder:
    """
    Builds `UPDATE <table> SET ... WHERE ...` statements from named fields.

    Column names are checked against the table's known columns, so neither field names
    nor values ever reach the SQL text unparameterised.

    Example:
        sql, params = (UpdateBuilder("customers", CUSTOMER_COLUMNS)
                       .set("customer_name", "Asha")
                       .set_expression("pending_sync", "1")
                       .where("id", "abc123")
                       .build())
    """

    def __init__(self, table: str, allowed_columns: Iterable[str]):
        self.table = table
        self.allowed_columns = frozenset(allowed_columns)
        self._assignments: List[Tuple[str, Optional[str], Any]] = []
        self._conditions: List[Tuple[str, Any]] = []

    def _check_column(self, column: str) -> None:
        if column not in self.allowed_columns:
            raise KeyError(f"Unknown column '{column}' for table '{self.table}'")

    def set(self, column: str, value: Any) -> "UpdateBuilder":
        self._check_column(column)
        self._assignments = [a for a in self._assignments if a[0] != column]
        self._assignments.append((column, None, value))
        return self

    def set_many(self, values: Dict[str, Any]) -> "UpdateBuilder":
        for column, value in values.items():
            self.set(column, value)
        return self

    def set_expression(self, column: str, expression: str) -> "UpdateBuilder":
        """Assigns a fixed SQL expression (e.g. `NULL` or a CASE) to a column. The expression is not a value."""
        self._check_column(column)
        self._assignments = [a for a in self._assignments if a[0] != column]
        self._assignments.append((column, expression, None))
        return self

    def where(self, column: str, value: Any) -> "UpdateBuilder":
        self._check_column(column)
        self._conditions.append((column, value))
        return self

    @property
    def columns(self) -> List[str]:
        return [column for column, _, _ in self._assignments]

    def build(self) -> Tuple[str, Tuple[Any, ...]]:
        if not self._assignments:
            raise ValueError(f"UPDATE on '{self.table}' has no columns to set")
        if not self._conditions:
            raise ValueError(f"UPDATE on '{self.table}' has no WHERE condition")

        set_parts, params = [], []
        for column, expression, value in self._assignments:
            if expression is not None:
                set_parts.append(f"{column} = {expression}")
            else:
                set_parts.append(f"{column} = ?")
                params.append(value)
        where_parts = []
        for column, value in self._conditions:
            where_parts.append(f"{column} = ?")
            params.append(value)

        sql = f"UPDATE {self.table} SET {', '.join(set_parts)} WHERE {' AND '.join(where_parts)}"
        return sql, tuple(params)

#
# End of update_builder.py
########################################################################################################################
