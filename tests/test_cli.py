"""Tests for the operator CLI."""

import uuid

from click.testing import CliRunner

from formbridge.cli import cli


def test_check_rules_valid_form(form):
    result = CliRunner().invoke(cli, ["check-rules", str(form.id)])
    assert result.exit_code == 0
    assert "Conditional logic is valid" in result.output


def test_check_rules_reports_cycle(form_factory, question):
    rule = lambda key: {  # noqa: E731
        "logic": "AND",
        "conditions": [{"question_key": key, "operator": "equals", "value": "x"}],
    }
    form = form_factory(
        [
            question("a", "fldName", conditional_rule=rule("b")),
            question("b", "fldEmail", conditional_rule=rule("a")),
        ]
    )

    result = CliRunner().invoke(cli, ["check-rules", str(form.id)])

    assert result.exit_code == 1
    assert "cycle: a -> b -> a" in result.output


def test_check_rules_unknown_form(db):
    result = CliRunner().invoke(cli, ["check-rules", str(uuid.uuid4())])
    assert result.exit_code == 1
    assert "not found" in result.output


def test_check_rules_lists_controlling_questions(form_factory, question):
    form = form_factory(
        [
            question("plan", "fldPlan"),
            question(
                "discount_code",
                "fldNotes",
                conditional_rule={
                    "logic": "AND",
                    "conditions": [{"question_key": "plan", "operator": "equals", "value": "pro"}],
                },
            ),
        ]
    )

    result = CliRunner().invoke(cli, ["check-rules", str(form.id)])

    assert result.exit_code == 0
    assert "plan controls: discount_code" in result.output
