from typing import Annotated, Any, Literal, Optional, TypedDict
import operator


Phase = Literal["requesting", "parsing", "validating", "failed", "done"]


class GenerationState(TypedDict, total=False):
    prompt: str
    attempt: int
    max_attempts: int
    phase: Phase
    raw_text: str
    payload: Any
    flow: Any
    error: Optional[str]
    delays: Annotated[list[float], operator.add]
