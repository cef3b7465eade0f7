"""Tests for the conditional visibility rule engine."""

from formbridge.schemas.forms import ConditionalRule
from formbridge.services.conditional_logic import (
    build_dependency_graph,
    dependents_of,
    detect_cycles,
    evaluate,
    evaluate_condition,
    validate_rules,
    visible_questions,
)


def _rule(logic, *conditions):
    return {
        "logic": logic,
        "conditions": [
            {"question_key": key, "operator": op, "value": value} for key, op, value in conditions
        ],
    }


def _q(key, rule=None):
    return {"key": key, "conditional_rule": rule}


class TestEvaluate:
    def test_no_rule_is_visible(self):
        assert evaluate(None, {}) is True

    def test_empty_conditions_is_visible(self):
        assert evaluate({"logic": "AND", "conditions": []}, {}) is True

    def test_and_requires_every_condition(self):
        rule = _rule("AND", ("role", "equals", "engineer"), ("years", "greaterThan", 3))
        assert evaluate(rule, {"role": "engineer", "years": "5"}) is True
        assert evaluate(rule, {"role": "engineer", "years": "2"}) is False

    def test_or_requires_one_condition(self):
        rule = _rule("OR", ("role", "equals", "engineer"), ("role", "equals", "designer"))
        assert evaluate(rule, {"role": "designer"}) is True
        assert evaluate(rule, {"role": "manager"}) is False

    def test_unknown_logic_behaves_as_and(self):
        rule = _rule("XOR", ("a", "equals", "x"), ("b", "equals", "y"))
        assert evaluate(rule, {"a": "x", "b": "y"}) is True
        assert evaluate(rule, {"a": "x"}) is False

    def test_accepts_pydantic_rule(self):
        rule = ConditionalRule.model_validate(_rule("AND", ("plan", "equals", "pro")))
        assert evaluate(rule, {"plan": "pro"}) is True


class TestConditionOperators:
    def test_missing_answer_never_satisfies(self):
        for op in ("equals", "notEquals", "contains", "notContains", "greaterThan", "lessThan"):
            condition = {"question_key": "q", "operator": op, "value": "x"}
            assert evaluate_condition(condition, {}) is False
            assert evaluate_condition(condition, {"q": ""}) is False
            assert evaluate_condition(condition, {"q": None}) is False

    def test_empty_list_answer_never_satisfies(self):
        condition = {"question_key": "q", "operator": "notContains", "value": "x"}
        assert evaluate_condition(condition, {"q": []}) is False

    def test_equals_is_loose_between_number_and_text(self):
        condition = {"question_key": "q", "operator": "equals", "value": 5}
        assert evaluate_condition(condition, {"q": "5"}) is True
        assert evaluate_condition(condition, {"q": "6"}) is False

    def test_not_equals(self):
        condition = {"question_key": "q", "operator": "notEquals", "value": "no"}
        assert evaluate_condition(condition, {"q": "yes"}) is True
        assert evaluate_condition(condition, {"q": "no"}) is False

    def test_contains_on_list_and_text(self):
        condition = {"question_key": "q", "operator": "contains", "value": "red"}
        assert evaluate_condition(condition, {"q": ["red", "blue"]}) is True
        assert evaluate_condition(condition, {"q": ["blue"]}) is False
        assert evaluate_condition(condition, {"q": "dark red"}) is True

    def test_contains_on_number_is_false(self):
        condition = {"question_key": "q", "operator": "contains", "value": "1"}
        assert evaluate_condition(condition, {"q": 12}) is False

    def test_not_contains_on_number_is_true(self):
        condition = {"question_key": "q", "operator": "notContains", "value": "1"}
        assert evaluate_condition(condition, {"q": 12}) is True
        assert evaluate_condition(condition, {"q": "abc1"}) is False

    def test_numeric_comparisons_parse_leading_number(self):
        gt = {"question_key": "q", "operator": "greaterThan", "value": "10"}
        lt = {"question_key": "q", "operator": "lessThan", "value": 10}
        assert evaluate_condition(gt, {"q": "12.5kg"}) is True
        assert evaluate_condition(lt, {"q": "9"}) is True
        assert evaluate_condition(lt, {"q": "10"}) is False

    def test_multi_value_answer_compares_on_first_number(self):
        gt = {"question_key": "q", "operator": "greaterThan", "value": 2}
        assert evaluate_condition(gt, {"q": ["3", "1"]}) is True
        assert evaluate_condition(gt, {"q": ["1", "9"]}) is False
        assert evaluate_condition(gt, {"q": ["5"]}) is True

    def test_non_numeric_comparison_is_false(self):
        condition = {"question_key": "q", "operator": "greaterThan", "value": 1}
        assert evaluate_condition(condition, {"q": "abc"}) is False

    def test_unknown_operator_is_false(self):
        condition = {"question_key": "q", "operator": "startsWith", "value": "a"}
        assert evaluate_condition(condition, {"q": "abc"}) is False


class TestVisibleQuestions:
    def test_filters_hidden_questions(self):
        questions = [
            _q("has_pet"),
            _q("pet_name", _rule("AND", ("has_pet", "equals", "yes"))),
        ]
        assert [q["key"] for q in visible_questions(questions, {"has_pet": "no"})] == ["has_pet"]
        assert [q["key"] for q in visible_questions(questions, {"has_pet": "yes"})] == [
            "has_pet",
            "pet_name",
        ]


class TestValidateRules:
    def test_none_rule_is_valid(self):
        assert validate_rules(None, []).valid is True

    def test_valid_rule(self):
        result = validate_rules(_rule("OR", ("a", "equals", "x")), ["a", "b"])
        assert result.valid is True
        assert result.errors == []

    def test_reports_invalid_logic_and_empty_conditions(self):
        result = validate_rules({"logic": "XOR", "conditions": []}, ["a"])
        assert result.valid is False
        assert "Invalid logic operator. Must be AND or OR." in result.errors
        assert "Conditions array is required and must not be empty." in result.errors

    def test_reports_each_condition_problem(self):
        rule = {
            "logic": "AND",
            "conditions": [
                {"question_key": "missing", "operator": "equals", "value": "x"},
                {"question_key": "a", "operator": "startsWith", "value": "x"},
                {"question_key": "a", "operator": "equals", "value": None},
            ],
        }
        result = validate_rules(rule, ["a"])
        assert result.valid is False
        assert result.errors == [
            'Condition 0: question_key "missing" not found.',
            'Condition 1: invalid operator "startsWith".',
            "Condition 2: value is required.",
        ]


class TestDependencyGraph:
    def test_edges_point_from_referenced_to_dependent(self):
        questions = [
            _q("a"),
            _q("b", _rule("AND", ("a", "equals", "x"))),
            _q("c", _rule("AND", ("a", "equals", "x"), ("ghost", "equals", "y"))),
        ]
        graph = build_dependency_graph(questions)
        assert graph["a"].depended_on_by == ["b", "c"]
        assert graph["c"].depends_on == ["a"]
        assert "ghost" not in graph

    def test_dependents_of(self):
        questions = [
            _q("a"),
            _q("b", _rule("OR", ("a", "equals", "x"), ("a", "equals", "y"))),
        ]
        assert dependents_of("a", questions) == ["b"]
        assert dependents_of("b", questions) == []


class TestDetectCycles:
    def test_acyclic_chain(self):
        questions = [
            _q("a"),
            _q("b", _rule("AND", ("a", "equals", "x"))),
            _q("c", _rule("AND", ("b", "equals", "x"))),
        ]
        report = detect_cycles(questions)
        assert report.has_cycles is False
        assert report.cycles == []

    def test_two_node_cycle(self):
        questions = [
            _q("a", _rule("AND", ("b", "equals", "x"))),
            _q("b", _rule("AND", ("a", "equals", "x"))),
        ]
        report = detect_cycles(questions)
        assert report.has_cycles is True
        assert report.cycles == [["a", "b", "a"]]

    def test_three_node_cycle_is_closed(self):
        questions = [
            _q("a", _rule("AND", ("c", "equals", "x"))),
            _q("b", _rule("AND", ("a", "equals", "x"))),
            _q("c", _rule("AND", ("b", "equals", "x"))),
        ]
        report = detect_cycles(questions)
        assert report.has_cycles is True
        cycle = report.cycles[0]
        assert cycle[0] == cycle[-1]
        assert set(cycle) == {"a", "b", "c"}

    def test_long_chain_does_not_recurse(self):
        questions = [_q("q0")] + [
            _q(f"q{i}", _rule("AND", (f"q{i - 1}", "equals", "x"))) for i in range(1, 5000)
        ]
        assert detect_cycles(questions).has_cycles is False
