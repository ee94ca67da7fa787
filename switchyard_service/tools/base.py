import inspect
import re
import typing
from abc import abstractmethod
from typing import Any, Dict, List, Optional, get_type_hints

from switchyard_service.core.interfaces import Tool

# Local tools describe themselves from the run() signature:
#
#     async def run(self, query: str, count: int = 5) -> dict:
#         """
#         Args:
#             query: What to search for.
#             count: Number of results (1-20).
#         """
#
# Parameters without a default are required. The class docstring becomes the
# tool description. Keep argument and return types JSON-serializable.

_JSON_TYPES = {str: "string", int: "integer", float: "number", bool: "boolean", list: "array", dict: "object"}

_ARGS_SECTION = re.compile(r"Args?:\s*(.*?)(^\S|\Z)", re.DOTALL | re.MULTILINE)
_ARG_LINE = re.compile(r"\s*(\w+)\s*:\s*(.*)")


def _json_type(annotation: Any) -> str:
    # Optional[X] -> X
    if typing.get_origin(annotation) is typing.Union:
        args = [a for a in typing.get_args(annotation) if a is not type(None)]
        annotation = args[0] if len(args) == 1 else str
    annotation = typing.get_origin(annotation) or annotation
    return _JSON_TYPES.get(annotation, "string")


def param_descriptions(docstring: str) -> Dict[str, str]:
    """Read `name: description` lines from a Google-style Args: section."""
    if not docstring:
        return {}
    section = _ARGS_SECTION.search(docstring)
    if not section:
        return {}
    out: Dict[str, str] = {}
    for line in section.group(1).splitlines():
        match = _ARG_LINE.match(line)
        if match:
            out[match.group(1)] = match.group(2).strip()
    return out


class BaseTool(Tool):
    def __init__(self):
        self._registry_name: Optional[str] = None

    @property
    def name(self) -> str:
        return self._registry_name or self.__class__.__name__

    @property
    def description(self) -> str:
        return inspect.cleandoc(self.__doc__ or "")

    @property
    def schema(self) -> Dict[str, Any]:
        return self.auto_schema

    @property
    def auto_schema(self) -> Dict[str, Any]:
        signature = inspect.signature(self.run)
        hints = get_type_hints(self.run)
        docs = param_descriptions(self.run.__doc__ or "")

        properties: Dict[str, Any] = {}
        required: List[str] = []
        for pname, param in signature.parameters.items():
            if param.kind in (param.VAR_POSITIONAL, param.VAR_KEYWORD):
                continue
            properties[pname] = {"type": _json_type(hints.get(pname, str)), "description": docs.get(pname, "")}
            if param.default is inspect.Parameter.empty:
                required.append(pname)

        return self.build_schema(self.name, self.description, properties, required)

    @staticmethod
    def build_schema(
        function_name: str,
        description: str,
        parameters: Dict[str, Any],
        required: Optional[List[str]] = None,
    ) -> Dict[str, Any]:
        """Wrap JSON-schema properties in a function tool definition."""
        return {
            "type": "function",
            "function": {
                "name": function_name,
                "description": description,
                "parameters": {
                    "type": "object",
                    "properties": parameters,
                    "required": required or [],
                },
            },
        }

    @abstractmethod
    async def run(self, **kwargs: Any) -> Any:
        raise NotImplementedError()
