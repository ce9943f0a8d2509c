from __future__ import annotations

import os
from functools import lru_cache
from typing import Any

from langchain_core.messages import BaseMessage, HumanMessage, SystemMessage
from langchain_openai import ChatOpenAI


@lru_cache(maxsize=4)
def make_llm(model: str | None = None) -> ChatOpenAI:
    model_name = model or os.getenv("CHAT_OPENAI_MODEL", "gpt-4o-mini")
    max_out = int(os.getenv("CHAT_OPENAI_MAX_OUTPUT_TOKENS", "4096"))
    temperature = float(os.getenv("CHAT_OPENAI_TEMPERATURE", "1.0"))
    return ChatOpenAI(model=model_name, max_tokens=max_out, temperature=temperature)


def message_text(message: BaseMessage) -> str:
    content: Any = message.content
    if isinstance(content, str):
        return content
    # Some providers return a list of content blocks.
    parts: list[str] = []
    for block in content or []:
        if isinstance(block, str):
            parts.append(block)
        elif isinstance(block, dict) and block.get("type") == "text":
            parts.append(str(block.get("text") or ""))
    return "".join(parts)


async def complete(system_prompt: str, user_prompt: str, *, model: str | None = None) -> str:
    llm = make_llm(model=model)
    reply = await llm.ainvoke([SystemMessage(content=system_prompt), HumanMessage(content=user_prompt)])
    return message_text(reply)
