"""
Catalog - Query Criteria.

============================================================
PURPOSE
============================================================
Structured filter expressions and their lowering into
backend predicates.

- TermCriteria:    element = value
- RangeCriteria:   start <= element <= end (either bound optional)
- BooleanCriteria: AND / OR over terms, NOT over one term
- Query:           list of criteria, combined with AND

Lowering produces a Predicate: SQL text over the columns of
the type's {type}_VIEW plus named bind parameters. Element
names are checked against the view's columns; values never
appear in the SQL text.

============================================================
"""

import itertools
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Sequence, Union

from core.exceptions import CatalogValidationError, CriteriaTranslationError, InvalidIdentifierError

from .classifier import DomainType, encode_value
from .schema import ProjectedSchema, validate_identifier


# ============================================================
# CRITERIA
# ============================================================

class BooleanOperator(str, Enum):
    """Boolean operators for compound criteria."""

    AND = "AND"
    OR = "OR"
    NOT = "NOT"


@dataclass
class TermCriteria:
    """Exact match on one element."""

    element: str
    value: Any


@dataclass
class RangeCriteria:
    """Range match on one element. Either bound may be omitted."""

    element: str
    start: Optional[Any] = None
    end: Optional[Any] = None
    inclusive: bool = True


@dataclass
class BooleanCriteria:
    """AND/OR over several criteria, or NOT over exactly one."""

    operator: BooleanOperator
    terms: List["Criteria"] = field(default_factory=list)


Criteria = Union[TermCriteria, RangeCriteria, BooleanCriteria]


@dataclass
class Query:
    """A filter over one product type's view. Criteria are ANDed."""

    criteria: List[Criteria] = field(default_factory=list)

    def add_criterion(self, criterion: Criteria) -> "Query":
        self.criteria.append(criterion)
        return self

    @property
    def is_empty(self) -> bool:
        return not self.criteria


@dataclass(frozen=True)
class Predicate:
    """Lowered filter: SQL boolean expression plus bind parameters."""

    sql: str
    params: Dict[str, Any] = field(default_factory=dict)


# ============================================================
# TRANSLATOR
# ============================================================

class PredicateTranslator(ABC):
    """Turns structured criteria into a backend predicate."""

    @abstractmethod
    def lower(self, criteria: Sequence[Criteria], schema: ProjectedSchema) -> Predicate:
        """
        Lower criteria for the given product type's view.

        Raises:
            CriteriaTranslationError: If the criteria are malformed
        """
        pass


class SqlPredicateTranslator(PredicateTranslator):
    """
    Lowers criteria into SQL over {type}_VIEW with named parameters.

    SQLite has no zoned timestamp type: TIMESTAMP_TZ values are stored
    as ISO text keeping their offset, so comparing them as text orders
    the same instant differently per offset. For the sqlite dialect
    both sides of a TIMESTAMP_TZ comparison are converted to UTC text
    first (millisecond precision). Other backends compare the native
    zoned column.
    """

    def __init__(self, param_prefix: str = "crit", dialect_name: Optional[str] = None) -> None:
        self._param_prefix = param_prefix
        self._dialect_name = dialect_name

    def lower(self, criteria: Sequence[Criteria], schema: ProjectedSchema) -> Predicate:
        if not criteria:
            raise CriteriaTranslationError("No criteria to lower")

        known = set(schema.view_columns)
        domain_types = schema.domain_types()
        counter = itertools.count()
        params: Dict[str, Any] = {}

        clauses = [
            self._lower_one(c, known, domain_types, counter, params)
            for c in criteria
        ]
        sql = clauses[0] if len(clauses) == 1 else " AND ".join(f"({c})" for c in clauses)
        return Predicate(sql=sql, params=params)

    # --------------------------------------------------------
    # INTERNALS
    # --------------------------------------------------------

    def _bind(
        self,
        element: str,
        value: Any,
        domain_types: Dict[str, DomainType],
        counter: Iterator[int],
        params: Dict[str, Any],
    ) -> str:
        name = f"{self._param_prefix}{next(counter)}"
        try:
            params[name] = encode_value(element, value, domain_types.get(element, DomainType.STRING))
        except CatalogValidationError as e:
            raise CriteriaTranslationError(f"Bad value for {element}: {e.reason}") from e
        return f":{name}"

    def _comparable(self, element: str, expr: str, domain_types: Dict[str, DomainType]) -> str:
        if self._dialect_name == "sqlite" and domain_types.get(element) == DomainType.TIMESTAMP_TZ:
            return f"strftime('%Y-%m-%d %H:%M:%f', {expr})"
        return expr

    def _column(self, element: str, known: set) -> str:
        try:
            return validate_identifier(element, known, operation="lower_criteria")
        except InvalidIdentifierError as e:
            raise CriteriaTranslationError(f"Unknown element {element!r}: {e.reason}") from e

    def _lower_one(
        self,
        criterion: Criteria,
        known: set,
        domain_types: Dict[str, DomainType],
        counter: Iterator[int],
        params: Dict[str, Any],
    ) -> str:
        if isinstance(criterion, TermCriteria):
            column = self._column(criterion.element, known)
            if criterion.value is None:
                return f"{column} IS NULL"
            placeholder = self._bind(criterion.element, criterion.value, domain_types, counter, params)
            column = self._comparable(criterion.element, column, domain_types)
            return f"{column} = {self._comparable(criterion.element, placeholder, domain_types)}"

        if isinstance(criterion, RangeCriteria):
            column = self._column(criterion.element, known)
            if criterion.start is None and criterion.end is None:
                raise CriteriaTranslationError(f"Range on {criterion.element} has no bounds")
            low_op, high_op = (">=", "<=") if criterion.inclusive else (">", "<")
            parts = []
            operand = self._comparable(criterion.element, column, domain_types)
            if criterion.start is not None:
                placeholder = self._bind(criterion.element, criterion.start, domain_types, counter, params)
                placeholder = self._comparable(criterion.element, placeholder, domain_types)
                parts.append(f"{operand} {low_op} {placeholder}")
            if criterion.end is not None:
                placeholder = self._bind(criterion.element, criterion.end, domain_types, counter, params)
                placeholder = self._comparable(criterion.element, placeholder, domain_types)
                parts.append(f"{operand} {high_op} {placeholder}")
            return " AND ".join(parts)

        if isinstance(criterion, BooleanCriteria):
            try:
                operator = BooleanOperator(str(getattr(criterion.operator, "value", criterion.operator)).upper())
            except ValueError:
                raise CriteriaTranslationError(f"Unknown boolean operator {criterion.operator!r}") from None

            if not criterion.terms:
                raise CriteriaTranslationError(f"{operator.value} criteria has no terms")
            if operator == BooleanOperator.NOT:
                if len(criterion.terms) != 1:
                    raise CriteriaTranslationError("NOT criteria takes exactly one term")
                inner = self._lower_one(criterion.terms[0], known, domain_types, counter, params)
                return f"NOT ({inner})"

            inner = [self._lower_one(t, known, domain_types, counter, params) for t in criterion.terms]
            return f" {operator.value} ".join(f"({c})" for c in inner)

        raise CriteriaTranslationError(f"Unsupported criteria type {type(criterion).__name__}")


__all__ = [
    "BooleanOperator",
    "TermCriteria",
    "RangeCriteria",
    "BooleanCriteria",
    "Criteria",
    "Query",
    "Predicate",
    "PredicateTranslator",
    "SqlPredicateTranslator",
]
