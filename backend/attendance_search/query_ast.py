from datetime import date
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator


FilterField = Literal[
    "student",     # student:UX23001 or student:"Aarav Patel"
    "email",       # email:gmail.com
    "session",     # session:1 or session:"Design Studio"
    "status",      # status:present|absent|medical
    "attendance",  # attendance:>80%
    "date",        # date:2024-01-10 or date:last-week
    "time",        # time:>14:00
]

SUPPORTED_FIELDS: List[str] = ["student", "email", "session", "status", "attendance", "date", "time"]

ComparisonOperator = Literal[
    "equals",
    "contains",
    "greater_than",
    "less_than",
    "greater_equal",
    "less_equal",
    "not_equals",
]

LogicalOperator = Literal["AND", "OR", "NOT"]

FilterValue = Union[bool, int, float, date, str]


class FilterNode(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["filter"] = "filter"
    field: FilterField
    operator: ComparisonOperator = "equals"
    value: FilterValue


class StudentRefNode(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["student_ref"] = "student_ref"
    student_name: str
    fuzzy: bool = True


class CompoundNode(BaseModel):
    """
    Boolean combination of sub-queries.

    NOT carries only `left`; AND / OR always carry both operands.
    """

    model_config = ConfigDict(frozen=True)

    type: Literal["compound"] = "compound"
    operator: LogicalOperator
    left: "QueryNode"
    right: Optional["QueryNode"] = None

    @model_validator(mode="after")
    def _check_operands(self) -> "CompoundNode":
        if self.operator == "NOT" and self.right is not None:
            raise ValueError("NOT takes a single operand")
        if self.operator != "NOT" and self.right is None:
            raise ValueError(f"{self.operator} requires a right operand")
        return self


class TextSearchNode(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["text_search"] = "text_search"
    query: str


QueryNode = Annotated[
    Union[FilterNode, StudentRefNode, CompoundNode, TextSearchNode],
    Field(discriminator="type"),
]

CompoundNode.model_rebuild()


class QueryAST(BaseModel):
    model_config = ConfigDict(frozen=True)

    root: QueryNode
    original_query: str
    has_advanced_syntax: bool


def format_filter_value(value: FilterValue) -> str:
    """Render a coerced filter value the way users typed it (80 not 80.0, ISO dates)."""
    if isinstance(value, bool):
        return str(value).lower()
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, date):
        return value.isoformat()
    return str(value)


def iter_filter_nodes(node: QueryNode) -> List[FilterNode]:
    """Every FilterNode in the tree, left operand first."""
    found: List[FilterNode] = []
    # Explicit stack: long implicit-AND chains are as deep as they are long
    stack: List[QueryNode] = [node]
    while stack:
        current = stack.pop()
        if isinstance(current, FilterNode):
            found.append(current)
        elif isinstance(current, CompoundNode):
            if current.right is not None:
                stack.append(current.right)
            stack.append(current.left)
    return found
