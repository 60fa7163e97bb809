"""Applies resolved voice commands to an attached edit target.

Dispatch is table-driven: one handler per `ActionType`, and for action types
whose payload names a sub-action, one handler per member of the payload enum.
Every table is checked for completeness when the executor is built, so a new
enum member without a handler fails at construction instead of falling
through at dictation time.
"""

import datetime
import logging
import re
from collections import defaultdict
from typing import Callable

from radvoice.engine.commands import (
    ActionType,
    CommandExecutionResult,
    FormatAction,
    NavigateAction,
    StructuralAction,
    SystemAction,
    VoiceCommand,
)
from radvoice.engine.document import EditTarget

logger = logging.getLogger(__name__)

PLACEHOLDER_RE = re.compile(r"\[([^\]]+)\]")
_LAST_WORD_RE = re.compile(r"\S+\s*$")
_NO_SPACE_BEFORE_RE = re.compile(r"[\s(]")
_NEXT_SECTION_RE = re.compile(r"\n\s*[A-ZÀ-Ü]{2,}[:\s]")

TAB_TEXT = "    "
HELP_ITEMS_PER_CATEGORY = 10

_MONTHS_PT = (
    "janeiro", "fevereiro", "março", "abril", "maio", "junho",
    "julho", "agosto", "setembro", "outubro", "novembro", "dezembro",
)

_ALIGNMENTS = {
    FormatAction.ALIGN_LEFT: "left",
    FormatAction.ALIGN_CENTER: "center",
    FormatAction.ALIGN_RIGHT: "right",
    FormatAction.ALIGN_JUSTIFY: "justify",
}


class CommandFailed(Exception):
    """A handler could not apply its command; the message is user-facing."""


def format_date_pt(now: datetime.datetime) -> str:
    """'19 de outubro de 2026'"""
    return f"{now.day:02d} de {_MONTHS_PT[now.month - 1]} de {now.year}"


def format_time(now: datetime.datetime) -> str:
    return now.strftime("%H:%M")


def section_pattern(header: str) -> re.Pattern:
    return re.compile(r"(^|\n)\s*" + re.escape(header) + r"[:\s]", re.IGNORECASE)


def _check_complete(table: dict, enum_cls, what: str):
    missing = [m.value for m in enum_cls if m not in table]
    if missing:
        raise RuntimeError(f"No {what} handler for: {', '.join(missing)}")


class CommandExecutor:
    def __init__(
        self,
        commands_provider: Callable[[], list[VoiceCommand]] = list,
        clock: Callable[[], datetime.datetime] = datetime.datetime.now,
    ):
        self.target: EditTarget | None = None
        self._commands_provider = commands_provider
        self._clock = clock

        self._handlers = {
            ActionType.INSERT_CONTENT: self._insert_content,
            ActionType.APPLY_TEMPLATE: self._apply_template,
            ActionType.PUNCTUATION: self._punctuation,
            ActionType.STRUCTURAL: self._structural,
            ActionType.FORMAT: self._format,
            ActionType.NAVIGATE: self._navigate,
            ActionType.SYSTEM: self._system,
        }
        self._structural_handlers = {
            StructuralAction.NEWLINE: lambda t: t.hard_break(),
            StructuralAction.PARAGRAPH: lambda t: t.split_block(),
            StructuralAction.TAB: lambda t: t.insert_text(TAB_TEXT),
        }
        self._format_handlers = {
            FormatAction.BOLD: lambda t: t.toggle_mark("bold"),
            FormatAction.ITALIC: lambda t: t.toggle_mark("italic"),
            FormatAction.UNDERLINE: lambda t: t.toggle_mark("underline"),
            FormatAction.UPPERCASE: lambda t: self._transform_selection(t, str.upper),
            FormatAction.LOWERCASE: lambda t: self._transform_selection(t, str.lower),
            **{a: (lambda t, value=v: t.set_alignment(value)) for a, v in _ALIGNMENTS.items()},
        }
        self._navigate_handlers = {
            NavigateAction.START: lambda t, cmd: t.set_selection(0),
            NavigateAction.END: lambda t, cmd: t.set_selection(t.size),
            NavigateAction.NEXT_FIELD: lambda t, cmd: self.go_to_next_field(t),
            NavigateAction.PREV_FIELD: lambda t, cmd: self.go_to_prev_field(t),
            NavigateAction.SECTION: lambda t, cmd: self.go_to_section(t, cmd.payload_param("header", "")),
        }
        self._system_handlers = {
            SystemAction.CLEAR_EDITOR: lambda t: t.clear(),
            SystemAction.NEW_REPORT: lambda t: t.set_content(""),
            SystemAction.DELETE_WORD: self._delete_last_word,
            SystemAction.DELETE_LINE: self._delete_current_line,
            SystemAction.UNDO: lambda t: self._history(t.undo, "Nothing to undo"),
            SystemAction.REDO: lambda t: self._history(t.redo, "Nothing to redo"),
            SystemAction.SELECT_ALL: lambda t: t.select_all(),
            SystemAction.INSERT_DATE: lambda t: self.insert_content(t, format_date_pt(self._clock())),
            SystemAction.INSERT_TIME: lambda t: self.insert_content(t, format_time(self._clock())),
            SystemAction.HELP: lambda t: self.help_listing(),
            SystemAction.STOP_DICTATION: lambda t: None,  # handled by the dictation host
        }

        _check_complete(self._handlers, ActionType, "action")
        _check_complete(self._structural_handlers, StructuralAction, "structural")
        _check_complete(self._format_handlers, FormatAction, "format")
        _check_complete(self._navigate_handlers, NavigateAction, "navigation")
        _check_complete(self._system_handlers, SystemAction, "system")

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    def execute(self, command: VoiceCommand) -> CommandExecutionResult:
        """Run one command against the attached target; never raises."""
        target = self.target
        if target is None:
            logger.warning("Cannot execute '%s': no document attached", command.id)
            return CommandExecutionResult(success=False, command=command, message="No document attached")

        try:
            handler = self._handlers[command.action_type]
            result = handler(target, command)
        except CommandFailed as e:
            logger.debug("Command %s not applied: %s", command.id, e)
            return CommandExecutionResult(success=False, command=command, message=str(e))
        except Exception as e:
            logger.error("Error executing %s: %s", command.id, e, exc_info=True)
            return CommandExecutionResult(success=False, command=command, message=f"Execution error: {e}")

        logger.debug("Executed %s (%s)", command.id, command.action_type.value)
        return result

    # ------------------------------------------------------------------
    # Action-type handlers
    # ------------------------------------------------------------------

    def _insert_content(self, target: EditTarget, command: VoiceCommand) -> CommandExecutionResult:
        content = self._text_payload(command, "content")
        inserted = self.insert_content(target, content)
        return CommandExecutionResult(success=True, command=command, inserted_content=inserted)

    def _apply_template(self, target: EditTarget, command: VoiceCommand) -> CommandExecutionResult:
        content = self._text_payload(command, "content")
        target.set_content(content)
        return CommandExecutionResult(success=True, command=command, inserted_content=content)

    def _punctuation(self, target: EditTarget, command: VoiceCommand) -> CommandExecutionResult:
        mark = self._text_payload(command, "text")
        target.insert_text(mark)
        return CommandExecutionResult(success=True, command=command, inserted_content=mark)

    def _structural(self, target: EditTarget, command: VoiceCommand) -> CommandExecutionResult:
        action = StructuralAction(command.payload_action())
        self._structural_handlers[action](target)
        return CommandExecutionResult(success=True, command=command)

    def _format(self, target: EditTarget, command: VoiceCommand) -> CommandExecutionResult:
        action = FormatAction(command.payload_action())
        self._format_handlers[action](target)
        return CommandExecutionResult(success=True, command=command)

    def _navigate(self, target: EditTarget, command: VoiceCommand) -> CommandExecutionResult:
        action = NavigateAction(command.payload_action())
        self._navigate_handlers[action](target, command)
        return CommandExecutionResult(success=True, command=command)

    def _system(self, target: EditTarget, command: VoiceCommand) -> CommandExecutionResult:
        action = SystemAction(command.payload_action())
        outcome = self._system_handlers[action](target)
        result = CommandExecutionResult(success=True, command=command)
        if action in (SystemAction.INSERT_DATE, SystemAction.INSERT_TIME):
            result.inserted_content = outcome
        elif action == SystemAction.HELP:
            result.message = outcome
        return result

    @staticmethod
    def _text_payload(command: VoiceCommand, key: str) -> str:
        if isinstance(command.payload, str):
            return command.payload
        value = command.payload_param(key)
        if not isinstance(value, str):
            raise CommandFailed(f"Command '{command.id}' has no text payload")
        return value

    # ------------------------------------------------------------------
    # Editing primitives
    # ------------------------------------------------------------------

    @staticmethod
    def insert_content(target: EditTarget, content: str) -> str:
        """Insert at the cursor, adding a space if it would glue onto a word."""
        start, _ = target.selection
        before = target.text_between(start - 1, start) if start > 0 else ""
        if before and not _NO_SPACE_BEFORE_RE.match(before):
            content = " " + content
        target.insert_text(content)
        return content

    @staticmethod
    def _transform_selection(target: EditTarget, transform: Callable[[str], str]):
        start, end = target.selection
        if start == end:
            raise CommandFailed("No text selected")
        target.replace_range(start, end, transform(target.text_between(start, end)))

    @staticmethod
    def _delete_last_word(target: EditTarget):
        start, _ = target.selection
        m = _LAST_WORD_RE.search(target.text_between(0, start))
        if not m:
            raise CommandFailed("No word before the cursor")
        target.delete_range(m.start(), start)

    @staticmethod
    def _delete_current_line(target: EditTarget):
        start, end = target.current_block()
        target.delete_range(start, end)

    @staticmethod
    def _history(step: Callable[[], bool], empty_message: str):
        if not step():
            raise CommandFailed(empty_message)

    # ------------------------------------------------------------------
    # Navigation
    # ------------------------------------------------------------------

    @staticmethod
    def go_to_next_field(target: EditTarget):
        _, cursor = target.selection
        m = PLACEHOLDER_RE.search(target.text_between(cursor, target.size))
        if not m:
            raise CommandFailed("No placeholder after the cursor")
        target.set_selection(cursor + m.start(), cursor + m.end())

    @staticmethod
    def go_to_prev_field(target: EditTarget):
        cursor, _ = target.selection
        matches = list(PLACEHOLDER_RE.finditer(target.text_between(0, cursor)))
        if not matches:
            raise CommandFailed("No placeholder before the cursor")
        last = matches[-1]
        target.set_selection(last.start(), last.end())

    @staticmethod
    def go_to_section(target: EditTarget, header: str):
        if not header:
            raise CommandFailed("Section header missing")
        m = section_pattern(header).search(target.text)
        if not m:
            raise CommandFailed(f"Section '{header}' not found")
        target.set_selection(m.end())

    @staticmethod
    def insert_conclusion(target: EditTarget, conclusion: str) -> bool:
        """Append a "- conclusion" line at the end of the IMPRESSÃO section.

        Returns False when the document has no IMPRESSÃO/CONCLUSÃO header.
        """
        text = target.text
        for header in ("IMPRESSÃO", "CONCLUSÃO"):
            m = re.search(r"\n\s*" + header + r"[:\s]*", text, re.IGNORECASE)
            if not m:
                continue
            nxt = _NEXT_SECTION_RE.search(text, m.end())
            pos = nxt.start() if nxt else len(text)
            target.set_selection(pos)
            target.insert_text(f"\n- {conclusion}")
            return True
        logger.debug("No IMPRESSÃO section, conclusion not inserted")
        return False

    # ------------------------------------------------------------------
    # Help
    # ------------------------------------------------------------------

    def help_listing(self) -> str:
        commands = self._commands_provider()
        by_category: dict[str, list[VoiceCommand]] = defaultdict(list)
        for cmd in commands:
            by_category[cmd.category.value].append(cmd)

        lines = ["COMANDOS DE VOZ DISPONÍVEIS"]
        for category, cmds in by_category.items():
            lines.append(f"{category.upper()} ({len(cmds)})")
            for cmd in cmds[:HELP_ITEMS_PER_CATEGORY]:
                lines.append(f'  "{cmd.name}" -> {cmd.action_type.value}')
            if len(cmds) > HELP_ITEMS_PER_CATEGORY:
                lines.append(f"  ... e mais {len(cmds) - HELP_ITEMS_PER_CATEGORY} comandos")
        lines.append(f"Total: {len(commands)} comandos disponíveis")

        listing = "\n".join(lines)
        logger.info("Voice command help:\n%s", listing)
        return listing
