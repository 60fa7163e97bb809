"""Static system command catalog (pt-BR) and catalog loading helpers."""

import json
import logging
from pathlib import Path

from pydantic import ValidationError

from radvoice.engine.commands import ActionType, CommandCategory, VoiceCommand

logger = logging.getLogger(__name__)


class CatalogLoadError(Exception):
    """The command catalog could not be built."""


def _cmd(id, name, phrases, category, action_type, payload, priority) -> VoiceCommand:
    return VoiceCommand(
        id=id,
        name=name,
        phrases=tuple(phrases),
        category=category,
        action_type=action_type,
        payload=payload,
        priority=priority,
    )


_P = CommandCategory.PUNCTUATION

PUNCTUATION_COMMANDS = [
    _cmd("punct_period", "ponto", ["ponto final", "ponto."], _P, ActionType.PUNCTUATION, ".", 100),
    _cmd("punct_comma", "vírgula", ["virgula"], _P, ActionType.PUNCTUATION, ",", 100),
    _cmd("punct_question", "ponto de interrogação", ["interrogação", "pergunta"], _P, ActionType.PUNCTUATION, "?", 100),
    _cmd("punct_exclamation", "ponto de exclamação", ["exclamação"], _P, ActionType.PUNCTUATION, "!", 100),
    _cmd("punct_colon", "dois pontos", ["dois-pontos"], _P, ActionType.PUNCTUATION, ":", 100),
    _cmd("punct_semicolon", "ponto e vírgula", ["ponto-e-vírgula", "ponto virgula"], _P, ActionType.PUNCTUATION, ";", 100),
    _cmd("punct_open_paren", "abrir parênteses", ["abre parênteses", "parênteses"], _P, ActionType.PUNCTUATION, "(", 100),
    _cmd("punct_close_paren", "fechar parênteses", ["fecha parênteses", "fim parênteses"], _P, ActionType.PUNCTUATION, ")", 100),
    _cmd("punct_hyphen", "hífen", ["traço", "travessão"], _P, ActionType.PUNCTUATION, "-", 100),
    _cmd("punct_slash", "barra", ["barra normal"], _P, ActionType.PUNCTUATION, "/", 100),
]

_S = CommandCategory.STRUCTURAL

STRUCTURAL_COMMANDS = [
    _cmd("struct_newline", "nova linha", ["próxima linha", "linha", "enter", "quebra de linha"], _S, ActionType.STRUCTURAL, "newline", 95),
    _cmd("struct_paragraph", "novo parágrafo", ["parágrafo", "próximo parágrafo", "pular parágrafo"], _S, ActionType.STRUCTURAL, "paragraph", 95),
    _cmd("struct_tab", "tabulação", ["tab", "recuo"], _S, ActionType.STRUCTURAL, "tab", 90),
]

_SYS = CommandCategory.SYSTEM

EDITING_COMMANDS = [
    _cmd("edit_delete_word", "apagar palavra", ["deletar palavra", "remover palavra", "apagar isso"], _SYS, ActionType.SYSTEM, "delete_word", 90),
    _cmd("edit_delete_line", "apagar linha", ["deletar linha", "remover linha"], _SYS, ActionType.SYSTEM, "delete_line", 90),
    _cmd("edit_undo", "desfazer", ["undo", "voltar", "ctrl z"], _SYS, ActionType.SYSTEM, "undo", 90),
    _cmd("edit_redo", "refazer", ["redo", "avançar"], _SYS, ActionType.SYSTEM, "redo", 90),
    _cmd("edit_select_all", "selecionar tudo", ["selecionar todo", "ctrl a"], _SYS, ActionType.SYSTEM, "select_all", 85),
]

_F = CommandCategory.FORMATTING

FORMATTING_COMMANDS = [
    _cmd("format_bold", "negrito", ["bold", "texto negrito"], _F, ActionType.FORMAT, "bold", 85),
    _cmd("format_italic", "itálico", ["italic", "texto itálico"], _F, ActionType.FORMAT, "italic", 85),
    _cmd("format_underline", "sublinhado", ["underline", "sublinhar"], _F, ActionType.FORMAT, "underline", 85),
    _cmd("format_uppercase", "maiúsculas", ["caixa alta", "uppercase", "letras maiúsculas"], _F, ActionType.FORMAT, "uppercase", 85),
    _cmd("format_lowercase", "minúsculas", ["caixa baixa", "lowercase", "letras minúsculas"], _F, ActionType.FORMAT, "lowercase", 85),
    _cmd("format_align_left", "alinhar à esquerda", ["alinhamento à esquerda"], _F, ActionType.FORMAT, "align_left", 80),
    _cmd("format_align_center", "centralizar", ["alinhar ao centro", "texto centralizado"], _F, ActionType.FORMAT, "align_center", 80),
    _cmd("format_align_right", "alinhar à direita", ["alinhamento à direita"], _F, ActionType.FORMAT, "align_right", 80),
    _cmd("format_align_justify", "justificar", ["texto justificado", "alinhamento justificado"], _F, ActionType.FORMAT, "align_justify", 80),
]

_N = CommandCategory.NAVIGATION

NAVIGATION_COMMANDS = [
    _cmd("nav_next_field", "próximo campo", ["campo seguinte", "avançar campo", "pular campo"], _N, ActionType.NAVIGATE, "next_field", 80),
    _cmd("nav_prev_field", "campo anterior", ["voltar campo"], _N, ActionType.NAVIGATE, "prev_field", 80),
    _cmd("nav_start", "início do documento", ["ir para início", "começo"], _N, ActionType.NAVIGATE, "start", 80),
    _cmd("nav_end", "fim do documento", ["ir para fim", "final"], _N, ActionType.NAVIGATE, "end", 80),
    _cmd("nav_impressao", "ir para impressão", ["seção impressão", "conclusão", "ir para conclusão"], _N, ActionType.NAVIGATE,
         {"action": "section", "header": "IMPRESSÃO"}, 85),
    _cmd("nav_tecnica", "ir para técnica", ["seção técnica"], _N, ActionType.NAVIGATE,
         {"action": "section", "header": "TÉCNICA"}, 85),
    _cmd("nav_relatorio", "ir para relatório", ["seção relatório", "achados"], _N, ActionType.NAVIGATE,
         {"action": "section", "header": "RELATÓRIO"}, 85),
]

SYSTEM_ACTION_COMMANDS = [
    _cmd("sys_clear_editor", "limpar editor", ["apagar tudo", "limpar tudo"], _SYS, ActionType.SYSTEM, "clear_editor", 70),
    _cmd("sys_new_report", "novo laudo", ["criar laudo", "laudo novo", "iniciar laudo", "novo documento"], _SYS, ActionType.SYSTEM, "new_report", 75),
    _cmd("sys_insert_date", "inserir data", ["data atual", "hoje", "data de hoje"], _SYS, ActionType.SYSTEM, "insert_date", 80),
    _cmd("sys_insert_time", "inserir hora", ["hora atual", "horário"], _SYS, ActionType.SYSTEM, "insert_time", 80),
    _cmd("sys_help", "ajuda", ["comandos", "o que posso dizer", "listar comandos", "mostrar ajuda"], _SYS, ActionType.SYSTEM, "help", 60),
    _cmd("sys_stop_dictation", "parar ditado", ["pausar ditado", "parar", "stop"], _SYS, ActionType.SYSTEM, "stop_dictation", 100),
]

_FR = CommandCategory.FRASE

MEDICAL_SPECIAL_COMMANDS = [
    _cmd("med_normal", "exame normal", ["sem alterações", "dentro da normalidade"], _FR, ActionType.INSERT_CONTENT,
         "Exame sem alterações significativas.", 70),
    _cmd("med_comparison", "comparado ao exame anterior", ["comparativo", "em relação ao exame anterior"], _FR, ActionType.INSERT_CONTENT,
         "Comparado ao exame anterior, ", 70),
    _cmd("med_stable", "aspecto estável", ["sem alteração evolutiva", "inalterado"], _FR, ActionType.INSERT_CONTENT,
         "Aspecto estável em relação ao exame prévio.", 70),
    _cmd("med_suggest_correlation", "correlação clínica", ["sugere-se correlação", "correlacionar clinicamente"], _FR, ActionType.INSERT_CONTENT,
         "Sugere-se correlação clínico-laboratorial.", 70),
]

ALL_SYSTEM_COMMANDS = [
    *PUNCTUATION_COMMANDS,
    *STRUCTURAL_COMMANDS,
    *EDITING_COMMANDS,
    *FORMATTING_COMMANDS,
    *NAVIGATION_COMMANDS,
    *SYSTEM_ACTION_COMMANDS,
    *MEDICAL_SPECIAL_COMMANDS,
]


def sort_by_priority(commands: list[VoiceCommand]) -> list[VoiceCommand]:
    """Descending priority; stable, so equal priorities keep insertion order."""
    return sorted(commands, key=lambda c: -c.priority)


def load_commands_file(path: Path) -> list[VoiceCommand]:
    """Read a JSON list of VoiceCommand records.

    Raises CatalogLoadError on unreadable files, bad JSON or invalid records.
    """
    try:
        raw = json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        raise CatalogLoadError(f"Cannot read command file {path}: {e}") from e
    if not isinstance(raw, list):
        raise CatalogLoadError(f"Command file {path} must contain a JSON list")
    try:
        commands = [VoiceCommand.model_validate(item) for item in raw]
    except ValidationError as e:
        raise CatalogLoadError(f"Invalid command in {path}: {e}") from e
    logger.info("Loaded %d command(s) from %s", len(commands), path)
    return commands


def build_catalog(extra_path: Path | None = None) -> list[VoiceCommand]:
    """Build the active catalog: static system commands plus optional extras.

    Extra commands with an id already in the static catalog replace it.
    """
    by_id: dict[str, VoiceCommand] = {}
    for cmd in ALL_SYSTEM_COMMANDS:
        if cmd.id in by_id:
            raise CatalogLoadError(f"Duplicate command id '{cmd.id}'")
        by_id[cmd.id] = cmd

    if extra_path is not None:
        seen = set()
        for cmd in load_commands_file(extra_path):
            if cmd.id in seen:
                raise CatalogLoadError(f"Duplicate command id '{cmd.id}' in {extra_path}")
            seen.add(cmd.id)
            by_id[cmd.id] = cmd

    catalog = sort_by_priority(list(by_id.values()))
    logger.debug("Catalog built: %d command(s)", len(catalog))
    return catalog


def filter_commands_by_category(commands: list[VoiceCommand], category: CommandCategory) -> list[VoiceCommand]:
    return [c for c in commands if c.category == category]


def filter_commands_by_modality(commands: list[VoiceCommand], modality: str) -> list[VoiceCommand]:
    wanted = modality.upper()
    return [c for c in commands if c.modality and c.modality.upper() == wanted]
