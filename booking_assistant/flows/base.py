"""Schema-typed AI operations.

A flow is a named operation with a declared input model and output model.
Running it renders a prompt from the input fields, calls the chat model,
and parses the JSON reply against the output model.  Any failure along the
way (transport, unparseable JSON, schema mismatch) surfaces as FlowError;
nothing is retried here.
"""

from __future__ import annotations

import logging
from typing import Any, ClassVar, Generic, TypeVar

from langchain_core.exceptions import OutputParserException
from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.output_parsers import JsonOutputParser
from langchain_core.prompts import ChatPromptTemplate
from pydantic import BaseModel, ValidationError

from booking_assistant.llm import invoke_llm

log = logging.getLogger("booking_assistant.flows")

InputT = TypeVar("InputT", bound=BaseModel)
OutputT = TypeVar("OutputT", bound=BaseModel)


class FlowError(Exception):
    """An AI operation failed or returned something outside its schema."""

    def __init__(self, flow_name: str, message: str) -> None:
        super().__init__(f"{flow_name}: {message}")
        self.flow_name = flow_name


class BookingFlow(Generic[InputT, OutputT]):
    """Base class for the booking pipeline's AI operations.

    Subclasses declare ``name``, ``input_model``, ``output_model``,
    ``system_prompt`` and ``prompt_template``.  The template is a
    LangChain f-string template; ``{format_instructions}`` is always
    available and is derived from ``output_model``.
    """

    name: ClassVar[str]
    input_model: ClassVar[type[BaseModel]]
    output_model: ClassVar[type[BaseModel]]
    system_prompt: ClassVar[str]
    prompt_template: ClassVar[str]

    def __init__(self, llm: BaseChatModel) -> None:
        self._llm = llm
        self._parser = JsonOutputParser(pydantic_object=self.output_model)
        self._prompt = ChatPromptTemplate.from_messages([
            ("system", self.system_prompt),
            ("human", self.prompt_template),
        ])

    def prompt_variables(self, payload: InputT) -> dict[str, Any]:
        """Values substituted into ``prompt_template``."""
        return payload.model_dump()

    def postprocess(self, payload: InputT, result: OutputT) -> OutputT:
        """Hook for adjusting a parsed result before it is returned."""
        return result

    async def run(self, payload: InputT | dict[str, Any]) -> OutputT:
        if not isinstance(payload, self.input_model):
            try:
                payload = self.input_model.model_validate(payload)
            except ValidationError as e:
                raise FlowError(self.name, f"invalid input: {e}") from e

        variables = self.prompt_variables(payload)
        variables["format_instructions"] = self._parser.get_format_instructions()
        messages = self._prompt.format_messages(**variables)

        try:
            text = await invoke_llm(self._llm, messages)
        except Exception as e:
            log.error("%s: AI service call failed: %s", self.name, e)
            raise FlowError(self.name, "AI service call failed") from e

        try:
            data = self._parser.parse(text)
            result = self.output_model.model_validate(data)
        except (OutputParserException, ValidationError) as e:
            log.error("%s: response did not match %s: %s",
                      self.name, self.output_model.__name__, e)
            raise FlowError(self.name, "AI response did not match the expected schema") from e

        result = self.postprocess(payload, result)
        log.info("%s completed", self.name)
        return result
