"""Chat model construction and a logged invoke helper."""

from __future__ import annotations

import logging
from typing import Sequence

from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.messages import BaseMessage

from booking_assistant.config import Settings, settings as default_settings

log = logging.getLogger("booking_assistant.llm")

DEFAULT_MODELS = {
    "claude": "claude-sonnet-4-5",
    "openai": "gpt-4o",
}


def build_chat_model(cfg: Settings | None = None) -> BaseChatModel:
    """Create the chat model for the configured provider."""
    cfg = cfg or default_settings
    model = cfg.llm_model or DEFAULT_MODELS.get(cfg.llm_provider, "")

    if cfg.llm_provider == "claude":
        from langchain_anthropic import ChatAnthropic

        llm = ChatAnthropic(
            model=model,
            temperature=cfg.llm_temperature,
            api_key=cfg.anthropic_api_key or None,
        )
    elif cfg.llm_provider == "openai":
        from langchain_openai import ChatOpenAI

        llm = ChatOpenAI(
            model=model,
            temperature=cfg.llm_temperature,
            api_key=cfg.openai_api_key or None,
        )
    else:
        raise ValueError(f"Unknown LLM provider: {cfg.llm_provider!r}")

    log.info("Chat model ready: provider=%s model=%s", cfg.llm_provider, model)
    return llm


def message_text(message: BaseMessage) -> str:
    """Flatten a chat message's content into plain text."""
    content = message.content
    if isinstance(content, str):
        return content
    parts = []
    for block in content:
        if isinstance(block, str):
            parts.append(block)
        elif isinstance(block, dict) and block.get("type") == "text":
            parts.append(block.get("text", ""))
    return "".join(parts)


async def invoke_llm(llm: BaseChatModel, messages: Sequence[BaseMessage]) -> str:
    """Send ``messages`` to ``llm`` and return the reply text."""
    log.debug("LLM request: %d messages", len(messages))
    for m in messages:
        log.debug("  %s: %s", m.type, str(m.content)[:500])

    resp = await llm.ainvoke(list(messages))
    text = message_text(resp)
    log.debug("LLM response: %s", text[:500])
    return text
