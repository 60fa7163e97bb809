"""Voice command data model: catalog entries, payload enums and results."""

import datetime
import enum
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, Field


class CommandCategory(str, enum.Enum):
    PUNCTUATION = "punctuation"
    STRUCTURAL = "structural"
    SYSTEM = "system"
    FORMATTING = "formatting"
    NAVIGATION = "navigation"
    FRASE = "frase"
    TEMPLATE = "template"


class ActionType(str, enum.Enum):
    INSERT_CONTENT = "insert_content"
    APPLY_TEMPLATE = "apply_template"
    PUNCTUATION = "punctuation"
    STRUCTURAL = "structural"
    FORMAT = "format"
    NAVIGATE = "navigate"
    SYSTEM = "system"


class StructuralAction(str, enum.Enum):
    NEWLINE = "newline"
    PARAGRAPH = "paragraph"
    TAB = "tab"


class FormatAction(str, enum.Enum):
    BOLD = "bold"
    ITALIC = "italic"
    UNDERLINE = "underline"
    UPPERCASE = "uppercase"
    LOWERCASE = "lowercase"
    ALIGN_LEFT = "align_left"
    ALIGN_CENTER = "align_center"
    ALIGN_RIGHT = "align_right"
    ALIGN_JUSTIFY = "align_justify"


class NavigateAction(str, enum.Enum):
    START = "start"
    END = "end"
    NEXT_FIELD = "next_field"
    PREV_FIELD = "prev_field"
    SECTION = "section"


class SystemAction(str, enum.Enum):
    CLEAR_EDITOR = "clear_editor"
    NEW_REPORT = "new_report"
    DELETE_WORD = "delete_word"
    DELETE_LINE = "delete_line"
    UNDO = "undo"
    REDO = "redo"
    SELECT_ALL = "select_all"
    INSERT_DATE = "insert_date"
    INSERT_TIME = "insert_time"
    HELP = "help"
    STOP_DICTATION = "stop_dictation"


class VoiceCommand(BaseModel):
    """A catalog entry the matcher can resolve an utterance to.

    `payload` is either a plain string (text to insert, or the value of one
    of the payload enums above) or structured parameters, e.g.
    ``{"action": "section", "header": "IMPRESSÃO"}`` for section navigation.
    `priority` only breaks ties between equally scored matches.
    """
    model_config = {"frozen": True}

    id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    phrases: tuple[str, ...] = ()
    category: CommandCategory
    action_type: ActionType
    payload: str | dict[str, Any] | None = None
    priority: int = 0
    modality: str | None = None
    region: str | None = None

    def payload_action(self) -> str | None:
        """Return the action name carried by the payload, if any."""
        if isinstance(self.payload, dict):
            return self.payload.get("action")
        return self.payload

    def payload_param(self, key: str, default: Any = None) -> Any:
        if isinstance(self.payload, dict):
            return self.payload.get(key, default)
        return default


@dataclass
class CommandMatchResult:
    command: VoiceCommand
    score: float  # 0 = identical, larger = worse
    matched_phrase: str
    is_exact: bool


@dataclass
class CommandExecutionResult:
    success: bool
    command: VoiceCommand | None = None
    message: str | None = None
    inserted_content: str | None = None


@dataclass
class EngineState:
    is_ready: bool = False
    is_active: bool = False
    total_commands: int = 0
    last_match: CommandMatchResult | None = None
    last_execution: CommandExecutionResult | None = None
    loaded_at: datetime.datetime | None = None
