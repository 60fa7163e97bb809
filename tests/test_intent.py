"""Tests for prefix-based intent detection."""

import pytest


def test_template_prefix():
    from radvoice.engine.intent import IntentType, detect_intent

    intent = detect_intent("modelo tc tórax")
    assert intent.type == IntentType.TEMPLATE
    assert intent.query == "tc tórax"
    assert intent.confidence == pytest.approx(0.95)
    assert intent.prefix == "modelo"
    assert intent.original_text == "modelo tc tórax"


def test_multi_word_prefix_wins_over_single_word():
    from radvoice.engine.intent import IntentType, detect_intent

    intent = detect_intent("aplicar modelo usg abdome")
    assert intent.type == IntentType.TEMPLATE
    assert intent.prefix == "aplicar modelo"
    assert intent.query == "usg abdome"

    intent = detect_intent("inserir frase colelitíase")
    assert intent.type == IntentType.FRASE
    assert intent.prefix == "inserir frase"
    assert intent.query == "colelitíase"


def test_prefix_is_case_and_accent_insensitive():
    from radvoice.engine.intent import IntentType, detect_intent

    intent = detect_intent("Modelo TC Tórax")
    assert intent.type == IntentType.TEMPLATE
    assert intent.query == "TC Tórax"

    intent = detect_intent("laudo de tórax")
    assert intent.type == IntentType.TEMPLATE
    assert intent.prefix == "laudo de"
    assert intent.query == "tórax"


def test_frase_prefix():
    from radvoice.engine.intent import IntentType, detect_intent

    intent = detect_intent("frase esteatose")
    assert intent.type == IntentType.FRASE
    assert intent.query == "esteatose"
    assert intent.confidence >= 0.9


def test_bare_prefix_has_lower_confidence():
    from radvoice.engine.intent import IntentType, detect_intent

    intent = detect_intent("modelo")
    assert intent.type == IntentType.TEMPLATE
    assert intent.query == ""
    assert intent.confidence == pytest.approx(0.7)


def test_short_residual_is_not_a_lookup():
    from radvoice.engine.intent import IntentType, detect_intent

    intent = detect_intent("modelo x")
    assert intent.type == IntentType.TEXT
    assert intent.query == "modelo x"


@pytest.mark.parametrize("text", ["vírgula", "Fígado de dimensões normais", "apagar linha", "direita"])
def test_no_prefix_is_text(text):
    from radvoice.engine.intent import IntentType, detect_intent

    intent = detect_intent(text)
    assert intent.type == IntentType.TEXT
    assert intent.query == text
    assert intent.confidence == 1.0
    assert intent.prefix is None


def test_prefix_helpers():
    from radvoice.engine.intent import IntentType, get_intent_type, has_command_prefix

    assert has_command_prefix("modelo abdome")
    assert has_command_prefix("Frase")
    assert not has_command_prefix("fígado")
    assert not has_command_prefix("modelagem")
    assert get_intent_type("frase x y") == IntentType.FRASE
    assert get_intent_type("nova linha") == IntentType.TEXT
