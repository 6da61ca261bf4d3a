"""Tool registry for the spreadsheet tools.

Manages tool definitions, argument parsing and contained execution.
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple, Type

from pydantic import ValidationError

from schemas.tools import (
    AnyToolArgs,
    CellUpdateArgs,
    ConfirmActionArgs,
    ExplainFormulaArgs,
    HighlightCellsArgs,
    OpenTablePreviewArgs,
    RangeReadArgs,
    ToolArgs,
)
from services.confirmation import ConfirmationGate, ToolCall, ToolCallState
from services.workbook import WorkbookService

logger = logging.getLogger(__name__)

NEEDS_CONFIRMATION = "needs_confirmation"


@dataclass(frozen=True)
class ToolSpec:
    name: str
    description: str
    args_schema: Type[ToolArgs]

    def as_openai_tool(self) -> Dict[str, Any]:
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.args_schema.model_json_schema(by_alias=True),
            },
        }


TOOL_SPECS = (
    ToolSpec(
        name="confirmAction",
        description=(
            "Request explicit user confirmation before performing a destructive action. "
            "You MUST use this tool before calling cellUpdate or any other tool that modifies data."
        ),
        args_schema=ConfirmActionArgs,
    ),
    ToolSpec(
        name="rangeRead",
        description="Read a cell range from the workbook.",
        args_schema=RangeReadArgs,
    ),
    ToolSpec(
        name="cellUpdate",
        description=(
            "Update a single cell in the workbook. You MUST ask for user confirmation using the "
            "confirmAction tool BEFORE calling this tool, then call it with confirmed=true."
        ),
        args_schema=CellUpdateArgs,
    ),
    ToolSpec(
        name="openTablePreview",
        description="Render a table preview for the user.",
        args_schema=OpenTablePreviewArgs,
    ),
    ToolSpec(
        name="highlightCells",
        description="Highlight specific cells within a table preview.",
        args_schema=HighlightCellsArgs,
    ),
    ToolSpec(
        name="explainFormula",
        description="Explain the formula in a cell of the workbook, if present.",
        args_schema=ExplainFormulaArgs,
    ),
)


class ToolRegistry:
    """
    Registry for the workbook tools.

    Every call goes through the confirmation gate, and every failure is
    returned as ``{"status": "error", "message": ...}`` instead of raised.
    """

    def __init__(self, workbook: WorkbookService, specs: Tuple[ToolSpec, ...] = TOOL_SPECS):
        self.workbook = workbook
        self._tools: Dict[str, ToolSpec] = {spec.name: spec for spec in specs}

    def get(self, name: str) -> Optional[ToolSpec]:
        return self._tools.get(name)

    def list_names(self) -> List[str]:
        return list(self._tools.keys())

    def openai_tools(self) -> List[Dict[str, Any]]:
        """Tool definitions in the format chat models bind."""
        return [spec.as_openai_tool() for spec in self._tools.values()]

    def parse(self, tool_call_id: str, name: str, raw_args: Optional[Dict[str, Any]]) -> ToolCall:
        """Build a typed call; raises KeyError or ValidationError on bad input."""
        spec = self._tools.get(name)
        if spec is None:
            raise KeyError(f"Unknown tool: {name}")
        args = spec.args_schema.model_validate(raw_args or {})
        return ToolCall(id=tool_call_id, name=name, args=args, raw_args=raw_args or {})

    def run(
        self,
        tool_call_id: str,
        name: str,
        raw_args: Optional[Dict[str, Any]],
        gate: ConfirmationGate,
    ) -> Tuple[ToolCall, Dict[str, Any]]:
        """Parse, gate and execute one call. Never raises."""
        try:
            call = self.parse(tool_call_id, name, raw_args)
        except KeyError as e:
            logger.warning(f"Model requested unknown tool {name!r}")
            call = ToolCall(id=tool_call_id, name=name, raw_args=raw_args or {}, state=ToolCallState.ERROR)
            return call, {"status": "error", "message": str(e.args[0])}
        except ValidationError as e:
            logger.warning(f"Invalid arguments for {name}: {e}")
            call = ToolCall(id=tool_call_id, name=name, raw_args=raw_args or {}, state=ToolCallState.ERROR)
            return call, {"status": "error", "message": f"Invalid arguments for {name}: {e}"}

        if not gate.admit(call):
            return call, self._needs_confirmation(call.args)

        try:
            result = self._dispatch(call.args)
        except Exception as e:
            logger.error(f"Tool {name} failed: {e}")
            gate.mark_failed(call)
            return call, {"status": "error", "message": str(e) or f"Failed to run {name}."}

        gate.mark_executed(call)
        return call, result

    @staticmethod
    def _needs_confirmation(args: AnyToolArgs) -> Dict[str, Any]:
        if isinstance(args, CellUpdateArgs):
            return {
                "status": NEEDS_CONFIRMATION,
                "sheet": args.sheet,
                "cell": args.cell,
                "value": args.value,
            }
        return {"status": NEEDS_CONFIRMATION, **args.model_dump(by_alias=True, exclude_none=True)}

    def _dispatch(self, args: AnyToolArgs) -> Dict[str, Any]:
        if isinstance(args, RangeReadArgs):
            return {"status": "ok", "result": self.workbook.read_range(args.range, args.sheet)}
        if isinstance(args, CellUpdateArgs):
            return {"status": "updated", "result": self.workbook.write_cell(args.cell, args.value, args.sheet)}
        if isinstance(args, ExplainFormulaArgs):
            return {"status": "ok", "result": self.workbook.explain_formula(args.cell, args.sheet)}
        if isinstance(args, (OpenTablePreviewArgs, HighlightCellsArgs)):
            return {"status": "ok", **args.model_dump(by_alias=True, exclude_none=True)}
        raise TypeError(f"No handler for {type(args).__name__}")
