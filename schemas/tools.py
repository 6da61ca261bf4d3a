"""Strict argument schemas for the spreadsheet tools, one model per tool."""
from typing import List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

ScalarValue = Optional[Union[bool, int, float, str]]


class ToolArgs(BaseModel):
    """Base for tool arguments: undeclared fields are rejected."""
    model_config = ConfigDict(extra="forbid", populate_by_name=True)


class ConfirmActionArgs(ToolArgs):
    title: Optional[str] = None
    description: Optional[str] = None
    action_id: Optional[str] = Field(default=None, alias="actionId")
    confirm_label: Optional[str] = Field(default=None, alias="confirmLabel")
    cancel_label: Optional[str] = Field(default=None, alias="cancelLabel")


class RangeReadArgs(ToolArgs):
    sheet: Optional[str] = None
    range: str = Field(..., description="A1 range such as A1:C4")


class CellUpdateArgs(ToolArgs):
    sheet: Optional[str] = None
    cell: str = Field(..., description="A1 cell address such as B2")
    value: ScalarValue = Field(..., description="New value; null clears the cell")
    confirmed: Optional[bool] = None

    @field_validator("confirmed", mode="before")
    @classmethod
    def only_literal_true(cls, value):
        # "true", 1 and the like do not count as confirmation
        if value is None or isinstance(value, bool):
            return value
        return False


class OpenTablePreviewArgs(ToolArgs):
    title: Optional[str] = None
    columns: List[str]
    rows: List[List[ScalarValue]]


class Highlight(ToolArgs):
    row: Union[int, float]
    col: Union[int, float]
    color: Optional[str] = None


class HighlightCellsArgs(ToolArgs):
    title: Optional[str] = None
    columns: List[str]
    rows: List[List[ScalarValue]]
    highlights: List[Highlight]


class ExplainFormulaArgs(ToolArgs):
    sheet: Optional[str] = None
    cell: str


AnyToolArgs = Union[
    ConfirmActionArgs,
    RangeReadArgs,
    CellUpdateArgs,
    OpenTablePreviewArgs,
    HighlightCellsArgs,
    ExplainFormulaArgs,
]
