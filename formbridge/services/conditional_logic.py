"""Conditional visibility rules for form questions.

Pure functions, no I/O:
- evaluate(): does a rule hold for a (partial) answer set
- validate_rules(): configuration check run at form save time
- build_dependency_graph() / detect_cycles(): rule graph analysis

Rules and questions are plain mappings (as stored in Form.questions):
    rule     = {"logic": "AND", "conditions": [{"question_key", "operator", "value"}]}
    question = {"key": ..., "conditional_rule": rule | None, ...}
"""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Mapping

from pydantic import BaseModel

from formbridge.db.enums import ConditionOperator, RuleLogic

logger = logging.getLogger(__name__)

_NUMBER_PREFIX_RE = re.compile(r"^[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")


def _as_mapping(value: Any) -> Mapping[str, Any] | None:
    if value is None:
        return None
    if isinstance(value, BaseModel):
        return value.model_dump()
    return value


def _is_empty_answer(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str) and value == "":
        return True
    if isinstance(value, (list, tuple)) and len(value) == 0:
        return True
    return False


def _parse_number(value: Any) -> float | None:
    """Lenient numeric parse: leading numeric prefix of the text form."""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        return None if math.isnan(value) else float(value)
    if isinstance(value, (list, tuple)):
        if len(value) == 1:
            return _parse_number(value[0])
        # a list reads as its comma-joined text, so ["3", "9"] parses as 3
        value = ",".join("" if v is None else str(v) for v in value)
    text = str(value).strip()
    if text.startswith(("Infinity", "+Infinity")):
        return math.inf
    if text.startswith("-Infinity"):
        return -math.inf
    match = _NUMBER_PREFIX_RE.match(text)
    if not match:
        return None
    return float(match.group(0))


def _loose_equals(actual: Any, expected: Any) -> bool:
    """Equality that tolerates number/text and list/text mismatches ("5" == 5)."""
    if actual == expected:
        return True
    if actual is None or expected is None:
        return False
    if isinstance(actual, (list, tuple)) and isinstance(expected, str):
        return ",".join(str(v) for v in actual) == expected
    if isinstance(expected, (list, tuple)) and isinstance(actual, str):
        return ",".join(str(v) for v in expected) == actual
    numeric_types = (int, float, bool)
    if isinstance(actual, numeric_types) or isinstance(expected, numeric_types):
        left = float(actual) if isinstance(actual, numeric_types) else _parse_strict(actual)
        right = float(expected) if isinstance(expected, numeric_types) else _parse_strict(expected)
        return left is not None and right is not None and left == right
    return False


def _parse_strict(value: Any) -> float | None:
    if not isinstance(value, str):
        return None
    text = value.strip()
    if text == "":
        return 0.0
    try:
        return float(text)
    except ValueError:
        return None


def _contains(actual: Any, expected: Any) -> bool:
    if isinstance(actual, (list, tuple)):
        return expected in actual
    if isinstance(actual, str):
        return str(expected) in actual
    return False


def _not_contains(actual: Any, expected: Any) -> bool:
    if isinstance(actual, (list, tuple)):
        return expected not in actual
    if isinstance(actual, str):
        return str(expected) not in actual
    return True


def _greater_than(actual: Any, expected: Any) -> bool:
    left, right = _parse_number(actual), _parse_number(expected)
    return left is not None and right is not None and left > right


def _less_than(actual: Any, expected: Any) -> bool:
    left, right = _parse_number(actual), _parse_number(expected)
    return left is not None and right is not None and left < right


OPERATORS: dict[str, Callable[[Any, Any], bool]] = {
    ConditionOperator.EQUALS.value: _loose_equals,
    ConditionOperator.NOT_EQUALS.value: lambda actual, expected: not _loose_equals(actual, expected),
    ConditionOperator.CONTAINS.value: _contains,
    ConditionOperator.NOT_CONTAINS.value: _not_contains,
    ConditionOperator.GREATER_THAN.value: _greater_than,
    ConditionOperator.LESS_THAN.value: _less_than,
}

VALID_LOGIC = {RuleLogic.AND.value, RuleLogic.OR.value}


# =============================================================================
# Evaluation
# =============================================================================


def evaluate_condition(condition: Mapping[str, Any], answers: Mapping[str, Any]) -> bool:
    """A missing or empty answer never satisfies a condition."""
    answer = answers.get(condition.get("question_key"))
    if _is_empty_answer(answer):
        return False

    operator = OPERATORS.get(condition.get("operator"))
    if operator is None:
        logger.warning("Unknown rule operator: %s", condition.get("operator"))
        return False

    try:
        return bool(operator(answer, condition.get("value")))
    except (TypeError, ValueError) as exc:
        logger.warning(
            "Rule condition evaluation error: question_key=%s operator=%s error=%s",
            condition.get("question_key"),
            condition.get("operator"),
            exc,
        )
        return False


def evaluate(rule: Any, answers: Mapping[str, Any]) -> bool:
    """
    Decide whether a question with this rule is visible.

    No rule, or a rule with no conditions, means always visible.
    OR needs one true condition; anything else is treated as AND.
    """
    rule = _as_mapping(rule)
    if not rule:
        return True

    conditions = rule.get("conditions") or []
    if not conditions:
        return True

    results = [evaluate_condition(_as_mapping(c) or {}, answers) for c in conditions]
    if rule.get("logic") == RuleLogic.OR.value:
        return any(results)
    return all(results)


def visible_questions(questions: Iterable[Any], answers: Mapping[str, Any]) -> list[Mapping[str, Any]]:
    """Questions whose conditional rule holds for the given answers."""
    visible = []
    for question in questions:
        question = _as_mapping(question)
        if evaluate(question.get("conditional_rule"), answers):
            visible.append(question)
    return visible


# =============================================================================
# Configuration validation
# =============================================================================


@dataclass
class RuleValidationResult:
    valid: bool
    errors: list[str] = field(default_factory=list)


def validate_rules(rule: Any, available_question_keys: Iterable[str]) -> RuleValidationResult:
    """Check a rule's shape against the question keys it may reference."""
    rule = _as_mapping(rule)
    if rule is None:
        return RuleValidationResult(valid=True)

    available = set(available_question_keys)
    errors: list[str] = []

    if rule.get("logic") not in VALID_LOGIC:
        errors.append("Invalid logic operator. Must be AND or OR.")

    conditions = rule.get("conditions")
    if not isinstance(conditions, list) or not conditions:
        errors.append("Conditions array is required and must not be empty.")
        return RuleValidationResult(valid=False, errors=errors)

    for index, raw in enumerate(conditions):
        condition = _as_mapping(raw) or {}
        question_key = condition.get("question_key")
        if not question_key:
            errors.append(f"Condition {index}: question_key is required.")
        elif question_key not in available:
            errors.append(f'Condition {index}: question_key "{question_key}" not found.')

        operator = condition.get("operator")
        if not operator:
            errors.append(f"Condition {index}: operator is required.")
        elif operator not in OPERATORS:
            errors.append(f'Condition {index}: invalid operator "{operator}".')

        if condition.get("value") is None:
            errors.append(f"Condition {index}: value is required.")

    return RuleValidationResult(valid=not errors, errors=errors)


# =============================================================================
# Dependency graph
# =============================================================================


@dataclass
class DependencyNode:
    depends_on: list[str] = field(default_factory=list)
    depended_on_by: list[str] = field(default_factory=list)


def _referenced_keys(question: Mapping[str, Any]) -> list[str]:
    rule = _as_mapping(question.get("conditional_rule"))
    if not rule:
        return []
    keys = []
    for raw in rule.get("conditions") or []:
        condition = _as_mapping(raw) or {}
        key = condition.get("question_key")
        if key:
            keys.append(key)
    return keys


def build_dependency_graph(questions: Iterable[Any]) -> dict[str, DependencyNode]:
    """Edge referenced -> dependent for every condition whose target exists."""
    question_list = [_as_mapping(q) for q in questions]
    graph: dict[str, DependencyNode] = {q["key"]: DependencyNode() for q in question_list}

    for question in question_list:
        for referenced in _referenced_keys(question):
            if referenced not in graph:
                continue
            graph[referenced].depended_on_by.append(question["key"])
            graph[question["key"]].depends_on.append(referenced)

    return graph


def dependents_of(question_key: str, questions: Iterable[Any]) -> list[str]:
    """Keys of questions whose visibility depends on question_key."""
    dependents: list[str] = []
    for question in questions:
        question = _as_mapping(question)
        if question_key in _referenced_keys(question) and question["key"] not in dependents:
            dependents.append(question["key"])
    return dependents


@dataclass
class CycleReport:
    has_cycles: bool
    cycles: list[list[str]] = field(default_factory=list)


def detect_cycles(questions: Iterable[Any]) -> CycleReport:
    """
    Find every cycle reachable through "depended on by" edges.

    Nodes live in an arena indexed by position; adjacency is a list of
    integer indices. Each node is a DFS root at most once. When an edge
    reaches a node on the active path, the path from that node to the
    current one (closed by repeating the start) is recorded.
    """
    graph = build_dependency_graph(questions)
    keys = list(graph.keys())
    index_of = {key: i for i, key in enumerate(keys)}
    adjacency = [[index_of[dep] for dep in graph[key].depended_on_by] for key in keys]

    visited = [False] * len(keys)
    on_path = [False] * len(keys)
    cycles: list[list[str]] = []

    for root in range(len(keys)):
        if visited[root]:
            continue

        path = [root]
        visited[root] = True
        on_path[root] = True
        # Each frame is (node, next edge position)
        stack = [(root, 0)]

        while stack:
            node, edge_pos = stack[-1]
            if edge_pos >= len(adjacency[node]):
                stack.pop()
                path.pop()
                on_path[node] = False
                continue

            stack[-1] = (node, edge_pos + 1)
            nxt = adjacency[node][edge_pos]

            if on_path[nxt]:
                start = path.index(nxt)
                cycles.append([keys[i] for i in path[start:]] + [keys[nxt]])
            elif not visited[nxt]:
                visited[nxt] = True
                on_path[nxt] = True
                path.append(nxt)
                stack.append((nxt, 0))

    return CycleReport(has_cycles=bool(cycles), cycles=cycles)
