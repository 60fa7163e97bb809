"""Smoke tests for the click commands that need no database."""

from click.testing import CliRunner


def test_match_command():
    from radvoice.cli import cli

    result = CliRunner().invoke(cli, ["match", "vírgula"])
    assert result.exit_code == 0
    assert "punct_comma" in result.output
    assert "(exact)" in result.output


def test_match_protected_word_is_not_executed():
    from radvoice.cli import cli

    result = CliRunner().invoke(cli, ["match", "direita"])
    assert result.exit_code == 0
    assert "format_align_right" in result.output
    assert "Safe:      no" in result.output
    assert "Action:    insert_text" in result.output


def test_intent_command():
    from radvoice.cli import cli

    result = CliRunner().invoke(cli, ["intent", "modelo tc tórax"])
    assert result.exit_code == 0
    assert "TEMPLATE" in result.output
    assert "'tc tórax'" in result.output


def test_commands_by_category():
    from radvoice.cli import cli

    result = CliRunner().invoke(cli, ["commands", "--category", "punctuation"])
    assert result.exit_code == 0
    assert "PUNCTUATION (10)" in result.output
    assert "NAVIGATION" not in result.output
