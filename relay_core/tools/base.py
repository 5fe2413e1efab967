import inspect
import re
from abc import abstractmethod
from typing import Any, Dict, Literal, Optional, get_args, get_origin, get_type_hints

from relay_core.core.interfaces import Tool
from relay_core.core.types import AgentFunction

# Writing a tool:
# subclass BaseTool, implement async run() with type-annotated keyword
# arguments and a Google-style docstring with an Args: section. The schema is
# derived from the signature; the class docstring becomes the description.

_JSON_TYPES = {str: "string", int: "integer", float: "number", bool: "boolean", dict: "object", list: "array"}


class BaseTool(Tool):

    def __init__(self):
        self._registry_name: Optional[str] = None

    @staticmethod
    def _extract_param_descriptions(docstring: str) -> Dict[str, str]:
        """Map parameter names to descriptions from a docstring's Args: section."""
        if not docstring:
            return {}
        param_desc = {}
        args_section = re.search(r"Args?:\s*\n(.*?)(?:\n\s*\n|\n\s*Returns?:|\Z)", docstring, re.DOTALL)
        if args_section:
            for line in args_section.group(1).splitlines():
                match = re.match(r"\s*(\w+)\s*(?:\([^)]*\))?\s*:\s*(.*)", line)
                if match:
                    name, desc = match.groups()
                    param_desc[name] = desc.strip()
        return param_desc

    @staticmethod
    def _param_schema(annotation: Any) -> Dict[str, Any]:
        if get_origin(annotation) is Literal:
            values = list(get_args(annotation))
            return {"type": _JSON_TYPES.get(type(values[0]), "string"), "enum": values}
        return {"type": _JSON_TYPES.get(get_origin(annotation) or annotation, "string")}

    @property
    def auto_schema(self) -> Dict[str, Any]:
        sig = inspect.signature(self.run)
        hints = get_type_hints(self.run)
        param_docs = self._extract_param_descriptions(self.run.__doc__ or self.__doc__ or "")
        params = {}
        required = []
        for name, param in sig.parameters.items():
            if param.kind in (param.VAR_POSITIONAL, param.VAR_KEYWORD):
                continue
            prop = self._param_schema(hints.get(name, str))
            prop["description"] = param_docs.get(name, "")
            params[name] = prop
            if param.default is inspect.Parameter.empty:
                required.append(name)
        return self.build_schema(self.name, self.description, params, required)

    @property
    def name(self) -> str:
        # registry name wins over the class name
        return self._registry_name or self.__class__.__name__

    @property
    def description(self) -> str:
        doc = inspect.getdoc(self) or ""
        return doc.split("\n\n", 1)[0].strip()

    @staticmethod
    def build_schema(function_name: str, description: str, parameters: dict, required: Optional[list] = None) -> dict:
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

    @property
    def schema(self) -> Dict[str, Any]:
        return self.auto_schema

    def as_function(self) -> AgentFunction:
        """Expose the tool to the agent."""
        fn = self.schema["function"]

        async def _execute(arguments: Dict[str, Any]) -> Any:
            return await self.run(**(arguments or {}))

        return AgentFunction(
            name=fn["name"],
            description=fn["description"],
            parameters=fn["parameters"],
            executor=_execute,
        )

    @abstractmethod
    async def run(self, *args: Any, **kwargs: Any) -> Any:
        raise NotImplementedError()
