"""
Tool registration contract.

A tool is a named capability an agent can invoke. Its executor is a
single-method object: it gets validated input and returns text. Expected
failures come back as descriptive text, since results are relayed verbatim
into an ongoing agent conversation.
"""

from dataclasses import dataclass
from typing import Any, Dict, Protocol, Type

from pydantic import BaseModel, ValidationError


class ToolExecutor(Protocol):
    """Runs a tool on validated input."""

    async def run(self, params: BaseModel) -> str: ...


class NoInput(BaseModel):
    """Input model for tools that take no arguments."""

    pass


@dataclass(frozen=True)
class Tool:
    """Immutable tool descriptor."""

    name: str
    description: str
    executor: ToolExecutor
    input_model: Type[BaseModel] = NoInput

    def input_schema(self) -> Dict[str, Any]:
        return self.input_model.model_json_schema()

    async def invoke(self, raw_input: Dict[str, Any]) -> str:
        """Validate raw input and run the executor."""
        try:
            params = self.input_model.model_validate(raw_input or {})
        except ValidationError as e:
            return f'Error: Invalid input for tool "{self.name}": {e}'
        return await self.executor.run(params)
