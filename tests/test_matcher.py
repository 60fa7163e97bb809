"""Tests for the fuzzy command matcher."""

import pytest


def _matcher(commands=None, threshold=None):
    from radvoice.engine.catalog import ALL_SYSTEM_COMMANDS
    from radvoice.engine.matcher import FuzzyMatcher

    matcher = FuzzyMatcher() if threshold is None else FuzzyMatcher(threshold)
    matcher.update_commands(list(ALL_SYSTEM_COMMANDS if commands is None else commands))
    return matcher


def _custom(id, name, phrases=(), priority=0):
    from radvoice.engine.commands import ActionType, CommandCategory, VoiceCommand

    return VoiceCommand(
        id=id, name=name, phrases=tuple(phrases),
        category=CommandCategory.FRASE, action_type=ActionType.INSERT_CONTENT,
        payload=name, priority=priority,
    )


def test_every_name_and_phrase_is_an_exact_match():
    from radvoice.engine.catalog import ALL_SYSTEM_COMMANDS
    from radvoice.engine.normalizer import normalize_for_matching

    matcher = _matcher()
    for command in ALL_SYSTEM_COMMANDS:
        for text in (command.name, *command.phrases):
            result = matcher.find_best_match(text)
            assert result is not None, text
            assert result.is_exact, text
            assert result.score == 0
            assert normalize_for_matching(result.matched_phrase) == normalize_for_matching(text)


def test_exact_match_ignores_case_and_accents():
    matcher = _matcher()

    result = matcher.find_best_match("VIRGULA")
    assert result.command.id == "punct_comma"
    assert result.command.payload == ","
    assert result.is_exact

    result = matcher.find_best_match("virgola")  # phonetic correction
    assert result.command.id == "punct_comma"


def test_fuzzy_match_inside_longer_phrase():
    matcher = _matcher()

    result = matcher.find_best_match("direita")
    assert result is not None
    assert result.command.id == "format_align_right"
    assert not result.is_exact
    assert 0 < result.score <= 0.5


def test_long_dictation_does_not_match_short_command():
    matcher = _matcher()

    assert matcher.find_best_match("o fígado apresenta dimensões normais e contornos regulares") is None


def test_empty_and_too_short_input():
    matcher = _matcher()

    assert matcher.find_best_match("") is None
    assert matcher.find_best_match("   ") is None
    assert matcher.find_best_match("a") is None


def test_empty_catalog():
    from radvoice.engine.matcher import FuzzyMatcher

    assert FuzzyMatcher().find_best_match("vírgula") is None


def test_priority_breaks_ties():
    low = _custom("low", "marcar revisão", priority=10)
    high = _custom("high", "marcar revisão", priority=50)

    matcher = _matcher([low, high])
    assert matcher.find_best_match("marcar revisão").command.id == "high"


def test_insertion_order_breaks_equal_priority():
    first = _custom("first", "marcar revisão")
    second = _custom("second", "marcar revisão")

    matcher = _matcher([first, second])
    assert matcher.find_best_match("marcar revisão").command.id == "first"


def test_update_commands_is_idempotent():
    from radvoice.engine.catalog import ALL_SYSTEM_COMMANDS

    matcher = _matcher()
    before = matcher.stats()
    best_before = matcher.find_best_match("alinhar direita")

    matcher.update_commands(list(ALL_SYSTEM_COMMANDS))
    assert matcher.stats() == before
    best_after = matcher.find_best_match("alinhar direita")
    assert best_after.command.id == best_before.command.id
    assert best_after.score == pytest.approx(best_before.score)


def test_set_threshold_rebuilds_index():
    matcher = _matcher()
    assert matcher.find_best_match("direita") is not None

    matcher.set_threshold(0.0)
    assert matcher.threshold == 0.0
    assert matcher.find_best_match("direita") is None
    # exact lookups do not depend on the tolerance
    assert matcher.find_best_match("vírgula").is_exact


def test_find_exact_only_checks_table():
    matcher = _matcher()

    assert matcher.find_exact("inserir data").command.id == "sys_insert_date"
    assert matcher.find_exact("direita") is None


def test_stats():
    from radvoice.engine.catalog import ALL_SYSTEM_COMMANDS

    stats = _matcher().stats()
    assert stats["total_commands"] == len(ALL_SYSTEM_COMMANDS)
    assert stats["exact_keys"] > len(ALL_SYSTEM_COMMANDS)
    assert stats["threshold"] == pytest.approx(0.35)


def test_text_distance_bounds():
    from radvoice.engine.matcher import text_distance

    assert text_distance("negrito", "negrito") == 0.0
    assert text_distance("", "negrito") == 1.0
    assert 0.0 < text_distance("direita", "alinhar a direita") < 0.5
    assert text_distance("laudo completo do abdome superior", "ponto") > 0.5
