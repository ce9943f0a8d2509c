from __future__ import annotations

from typing import Any

from giftflow.services.errors import ContentValidationError

from .schema import INTERACTIVE_TYPES, TERMINAL_TYPE, FlowSpec, validate_flow

MIN_GENERATED_NODES = 4
MAX_GENERATED_NODES = 12
REVEAL_MIN_POSITION = 0.8


def bookend_errors(flow: FlowSpec) -> list[str]:
    errors: list[str] = []
    types = [n.type for n in flow.nodes]
    if types[0] != "hero":
        errors.append(f"flow must open with a hero node, got '{types[0]}'")
    if types[-1] != TERMINAL_TYPE:
        errors.append(f"flow must close with an {TERMINAL_TYPE} node, got '{types[-1]}'")
    return errors


def check_flow_structure(flow: FlowSpec) -> tuple[bool, list[str]]:
    errors = bookend_errors(flow)
    types = [n.type for n in flow.nodes]
    count = len(types)

    if not MIN_GENERATED_NODES <= count <= MAX_GENERATED_NODES:
        errors.append(
            f"flow should have {MIN_GENERATED_NODES}-{MAX_GENERATED_NODES} nodes, got {count}"
        )

    reveals = [i for i, t in enumerate(types) if t == "reveal"]
    if len(reveals) > 1:
        errors.append(f"flow should have at most one reveal node, got {len(reveals)}")
    for i in reveals:
        if count > 1 and i < REVEAL_MIN_POSITION * (count - 1):
            errors.append(f"reveal node at index {i} is placed too early for {count} nodes")

    interactive = sum(1 for t in types if t in INTERACTIVE_TYPES)
    if not 1 <= interactive <= 2:
        errors.append(f"flow should have 1-2 interactive nodes, got {interactive}")

    return (len(errors) == 0, errors)


def extract_flow_errors(value: Any) -> list[str]:
    try:
        flow = validate_flow(value)
    except ContentValidationError as exc:
        return [f"flow schema invalid: {err}" for err in exc.errors]
    ok, errs = check_flow_structure(flow)
    return [] if ok else errs
