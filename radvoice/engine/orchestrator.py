"""Voice command engine: one instance per editor session.

Pipeline for each finalized transcript:

    normalize -> detect intent
      TEMPLATE / FRASE  -> dynamic lookup (optionally auto-apply the top hit)
      TEXT              -> fuzzy matcher -> acceptance threshold -> safety guard
                           -> execute the command, or insert the literal text

No public method lets an exception escape into the host: failures end up in
a `CommandExecutionResult`, a None return, or the `on_error` callback.
"""

import dataclasses
import datetime
import logging
import threading
from dataclasses import dataclass, field
from typing import Callable

from pydantic import ValidationError

from radvoice.config import EngineConfig
from radvoice.engine.catalog import build_catalog, sort_by_priority
from radvoice.engine.commands import (
    ActionType,
    CommandCategory,
    CommandExecutionResult,
    CommandMatchResult,
    EngineState,
    VoiceCommand,
)
from radvoice.engine.document import EditTarget
from radvoice.engine.executor import CommandExecutor
from radvoice.engine.intent import DetectedIntent, IntentType, detect_intent
from radvoice.engine.lookup import (
    CatalogKind,
    CatalogSearch,
    DynamicLookup,
    FraseCandidate,
    SearchContext,
    TemplateCandidate,
)
from radvoice.engine.matcher import FuzzyMatcher
from radvoice.engine.safety import RecommendedAction, SafetyGuard

logger = logging.getLogger(__name__)

_ENGINE_LOGGER = "radvoice.engine"


@dataclass
class EngineCallbacks:
    on_match: Callable[[CommandMatchResult], None] | None = None
    on_execute: Callable[[CommandExecutionResult], None] | None = None
    on_reject: Callable[[str, CommandMatchResult | None], None] | None = None
    on_error: Callable[[Exception], None] | None = None
    on_search_template: Callable[[str, SearchContext], None] | None = None
    on_search_frase: Callable[[str, SearchContext], None] | None = None


@dataclass
class UtteranceOutcome:
    transcript: str
    intent: DetectedIntent | None = None
    match: CommandMatchResult | None = None
    action: RecommendedAction | None = None
    execution: CommandExecutionResult | None = None
    candidates: list = field(default_factory=list)
    inserted_text: str | None = None


class VoiceCommandEngine:
    def __init__(
        self,
        config: EngineConfig | None = None,
        catalog_search: CatalogSearch | None = None,
        clock: Callable[[], datetime.datetime] = datetime.datetime.now,
    ):
        self.config = config or EngineConfig()
        self.catalog_search = catalog_search
        self._clock = clock

        self._commands: list[VoiceCommand] = []
        # Serializes catalog swaps between the reload thread and the host
        self._catalog_lock = threading.Lock()
        self._matcher = FuzzyMatcher(self.config.fuzzy_threshold)
        self._safety = SafetyGuard(self.config.safety_max_score)
        self._executor = CommandExecutor(self.get_commands, clock)
        self._lookup = (
            DynamicLookup(catalog_search, self.config.lookup_limit, self.config.lookup_max_score)
            if catalog_search is not None else None
        )
        self._callbacks = EngineCallbacks()
        self._context = SearchContext()
        self._state = EngineState()

        self._reload_thread: threading.Thread | None = None
        self._reload_stop: threading.Event | None = None

        if self.config.debug:
            self._apply_debug(True)

    # ------------------------------------------------------------------
    # Host wiring
    # ------------------------------------------------------------------

    def attach(self, document: EditTarget):
        self._executor.target = document
        logger.debug("Document attached")

    def detach(self):
        self._executor.target = None
        logger.debug("Document detached")

    @property
    def document(self) -> EditTarget | None:
        return self._executor.target

    def set_callbacks(self, callbacks: EngineCallbacks):
        self._callbacks = callbacks

    def _emit(self, name: str, *args):
        callback = getattr(self._callbacks, name)
        if callback is None:
            return
        try:
            callback(*args)
        except Exception:
            logger.exception("Callback %s failed", name)

    def _report_error(self, exc: Exception):
        self._emit("on_error", exc)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self):
        if self._state.is_active:
            logger.info("Engine already active")
            return
        self._state.is_active = True
        logger.info("Voice command engine started")

        if self.config.auto_reload:
            self._start_reload_task()

    def stop(self):
        if not self._state.is_active:
            return
        self._state.is_active = False
        self._cancel_reload_task()
        logger.info("Voice command engine stopped")

    def dispose(self):
        self.stop()
        self.detach()
        self._callbacks = EngineCallbacks()

    def _start_reload_task(self):
        stop_event = threading.Event()
        interval = self.config.reload_interval_seconds

        def _loop():
            # Event.wait returns True once stop() fires
            while not stop_event.wait(interval):
                self.reload_commands()

        self._reload_stop = stop_event
        self._reload_thread = threading.Thread(target=_loop, name="radvoice-reload", daemon=True)
        self._reload_thread.start()
        logger.info("Catalog auto-reload every %.0fs", interval)

    def _cancel_reload_task(self):
        if self._reload_stop is not None:
            self._reload_stop.set()
        if self._reload_thread is not None and self._reload_thread is not threading.current_thread():
            self._reload_thread.join(timeout=5)
        self._reload_thread = None
        self._reload_stop = None

    @property
    def reload_scheduled(self) -> bool:
        return self._reload_thread is not None and self._reload_thread.is_alive()

    # ------------------------------------------------------------------
    # Catalog
    # ------------------------------------------------------------------

    def load_commands(self) -> bool:
        """Build the catalog and index it; prior state is kept on failure."""
        try:
            catalog = build_catalog(self.config.commands_path)
            with self._catalog_lock:
                self._install(catalog)
        except Exception as e:
            logger.error("Failed to load voice commands: %s", e)
            self._report_error(e)
            return False

        self._state.is_ready = True
        self._state.loaded_at = self._clock()
        logger.info("Loaded %d voice command(s)", len(self._commands))
        return True

    def reload_commands(self) -> bool:
        logger.debug("Reloading voice commands")
        return self.load_commands()

    def _install(self, commands: list[VoiceCommand]):
        ordered = sort_by_priority(commands)
        # Index first so a failure leaves both the list and the matcher untouched
        self._matcher.update_commands(ordered)
        self._commands = ordered
        self._state.total_commands = len(ordered)

    def add_command(self, command: VoiceCommand) -> bool:
        try:
            with self._catalog_lock:
                commands = [c for c in self._commands if c.id != command.id]
                commands.append(command)
                self._install(commands)
        except Exception as e:
            logger.error("Failed to add command %s: %s", command.id, e)
            self._report_error(e)
            return False
        logger.debug("Command %s added", command.id)
        return True

    def remove_command(self, command_id: str) -> bool:
        try:
            with self._catalog_lock:
                commands = [c for c in self._commands if c.id != command_id]
                if len(commands) == len(self._commands):
                    return False
                self._install(commands)
        except Exception as e:
            logger.error("Failed to remove command %s: %s", command_id, e)
            self._report_error(e)
            return False
        logger.debug("Command %s removed", command_id)
        return True

    def get_commands(self) -> list[VoiceCommand]:
        return list(self._commands)

    # ------------------------------------------------------------------
    # Matching and execution
    # ------------------------------------------------------------------

    def _evaluate(self, transcript: str) -> tuple[CommandMatchResult | None, RecommendedAction]:
        """Best match and what to do with it: execute or insert as text."""
        match = self._matcher.find_best_match(transcript)
        if match is None:
            logger.debug("No command for '%s'", transcript)
            return None, RecommendedAction.INSERT_TEXT

        # A score equal to the threshold is accepted
        if match.score > self.config.min_match_score and not match.is_exact:
            logger.debug(
                "Rejected '%s' -> %s: score %.3f > %.3f",
                transcript, match.command.id, match.score, self.config.min_match_score,
            )
            return match, RecommendedAction.INSERT_TEXT

        return match, self._safety.get_recommended_action(match, transcript)

    def process_transcript(self, transcript: str) -> CommandMatchResult | None:
        """Match a transcript to a command and execute it.

        Returns the accepted match, or None when the transcript is empty,
        matches nothing, or the match is rejected.
        """
        if not transcript or not transcript.strip():
            return None

        try:
            match, action = self._evaluate(transcript)
        except Exception as e:
            logger.error("Error matching '%s': %s", transcript, e)
            self._report_error(e)
            return None

        if action != RecommendedAction.EXECUTE:
            self._emit("on_reject", transcript, match)
            return None

        self._accept(match)
        return match

    def _accept(self, match: CommandMatchResult) -> CommandExecutionResult:
        self._state.last_match = match
        self._emit("on_match", match)
        logger.debug(
            "Match: %s (score %.3f, exact=%s)", match.command.id, match.score, match.is_exact,
        )
        return self.execute_command(match.command)

    def execute_command(self, command: VoiceCommand) -> CommandExecutionResult:
        try:
            result = self._executor.execute(command)
        except Exception as e:
            logger.error("Unexpected error executing %s: %s", command.id, e)
            self._report_error(e)
            result = CommandExecutionResult(success=False, command=command, message=str(e))

        self._state.last_execution = result
        self._emit("on_execute", result)
        return result

    # ------------------------------------------------------------------
    # Full utterance pipeline
    # ------------------------------------------------------------------

    async def handle_utterance(self, transcript: str) -> UtteranceOutcome:
        outcome = UtteranceOutcome(transcript=transcript or "")
        if not transcript or not transcript.strip():
            return outcome

        try:
            intent = detect_intent(transcript)
            outcome.intent = intent

            if intent.type in (IntentType.TEMPLATE, IntentType.FRASE):
                # "inserir data" is a command, not a phrase lookup for "data"
                exact = self._matcher.find_exact(transcript)
                if exact is not None:
                    self._run_command(outcome, exact)
                    return outcome
                await self._run_lookup(outcome, intent)
                return outcome

            match, action = self._evaluate(transcript)
            outcome.match = match
            outcome.action = action
            if action == RecommendedAction.EXECUTE:
                self._run_command(outcome, match)
            else:
                self._emit("on_reject", transcript, match)
                if self.config.insert_rejected_as_text:
                    self._insert_literal(outcome, intent.original_text)
        except Exception as e:
            logger.error("Error handling utterance '%s': %s", transcript, e)
            self._report_error(e)
        return outcome

    def _run_command(self, outcome: UtteranceOutcome, match: CommandMatchResult):
        outcome.match = match
        outcome.action = RecommendedAction.EXECUTE
        outcome.execution = self._accept(match)
        if outcome.intent is not None:
            outcome.intent = dataclasses.replace(outcome.intent, type=IntentType.SYSTEM)

    def _insert_literal(self, outcome: UtteranceOutcome, text: str):
        target = self._executor.target
        if target is None:
            return
        try:
            outcome.inserted_text = self._executor.insert_content(target, text)
        except Exception as e:
            logger.error("Failed to insert dictated text: %s", e)
            self._report_error(e)

    async def _run_lookup(self, outcome: UtteranceOutcome, intent: DetectedIntent):
        if intent.type == IntentType.TEMPLATE:
            outcome.candidates = await self.search_templates(intent.query)
        else:
            outcome.candidates = await self.search_frases(intent.query)

        if not self.config.auto_apply_lookup or self._lookup is None:
            return
        best = self._lookup.best(outcome.candidates)
        if best is not None:
            outcome.execution = await self.apply_candidate(best)

    async def search_templates(self, query: str) -> list[TemplateCandidate]:
        return await self._search(DetectedIntent(IntentType.TEMPLATE, query, 1.0, query), "on_search_template")

    async def search_frases(self, query: str) -> list[FraseCandidate]:
        return await self._search(DetectedIntent(IntentType.FRASE, query, 1.0, query), "on_search_frase")

    async def _search(self, intent: DetectedIntent, hook: str) -> list:
        context = self.get_current_context()
        self._emit(hook, intent.query, context)
        if self._lookup is None or not intent.query.strip():
            return []
        try:
            return await self._lookup.search(intent, context)
        except Exception as e:
            logger.error("Catalog search for '%s' failed: %s", intent.query, e)
            self._report_error(e)
            return []

    async def apply_candidate(self, candidate: TemplateCandidate | FraseCandidate) -> CommandExecutionResult:
        """Apply a lookup result to the document and record its use."""
        if isinstance(candidate, TemplateCandidate):
            command = VoiceCommand(
                id=f"template_{candidate.id}",
                name=candidate.title,
                category=CommandCategory.TEMPLATE,
                action_type=ActionType.APPLY_TEMPLATE,
                payload=candidate.render(),
                modality=candidate.modality,
                region=candidate.region,
            )
            kind = CatalogKind.TEMPLATE
        else:
            command = VoiceCommand(
                id=f"frase_{candidate.id}",
                name=candidate.code,
                category=CommandCategory.FRASE,
                action_type=ActionType.INSERT_CONTENT,
                payload=candidate.text,
                modality=candidate.modality,
                region=candidate.region,
            )
            kind = CatalogKind.FRASE

        result = self.execute_command(command)
        if not result.success:
            return result

        if kind == CatalogKind.TEMPLATE:
            self.set_current_context(candidate.modality, candidate.region)
        elif candidate.conclusion and self._executor.target is not None:
            try:
                self._executor.insert_conclusion(self._executor.target, candidate.conclusion)
            except Exception as e:
                logger.warning("Could not insert conclusion for %s: %s", candidate.code, e)
                self._report_error(e)

        if self.catalog_search is not None:
            try:
                await self.catalog_search.record_usage(kind, candidate.id)
            except Exception as e:
                logger.warning("Could not record usage of %s %s: %s", kind.value, candidate.id, e)
                self._report_error(e)
        return result

    # ------------------------------------------------------------------
    # Context, state and configuration
    # ------------------------------------------------------------------

    def set_current_context(self, modality: str | None, region: str | None):
        self._context = SearchContext(modality=modality, region=region, usage=self._context.usage)
        logger.debug("Context: modality=%s region=%s", modality, region)

    def get_current_context(self) -> SearchContext:
        return dataclasses.replace(self._context)

    def get_state(self) -> EngineState:
        return dataclasses.replace(self._state)

    def get_config(self) -> EngineConfig:
        return self.config.model_copy()

    def get_stats(self) -> dict[str, int]:
        stats = {category.value: 0 for category in CommandCategory}
        for command in self._commands:
            stats[command.category.value] += 1
        stats["total"] = len(self._commands)
        return stats

    def matcher_stats(self) -> dict:
        return self._matcher.stats()

    def set_debug(self, enabled: bool):
        self.config = self.config.model_copy(update={"debug": enabled})
        self._apply_debug(enabled)

    @staticmethod
    def _apply_debug(enabled: bool):
        logging.getLogger(_ENGINE_LOGGER).setLevel(logging.DEBUG if enabled else logging.NOTSET)
        logger.info("Debug logging %s", "enabled" if enabled else "disabled")

    def set_config(self, **changes) -> EngineConfig:
        """Validate and apply config changes.

        Invalid changes are reported through `on_error` and the current
        config is kept.
        """
        try:
            config = EngineConfig.model_validate({**self.config.model_dump(), **changes})
        except ValidationError as e:
            logger.warning("Rejected config change %s: %s", changes, e)
            self._report_error(e)
            return self.get_config()
        previous, self.config = self.config, config

        if config.fuzzy_threshold != previous.fuzzy_threshold:
            with self._catalog_lock:
                self._matcher.set_threshold(config.fuzzy_threshold)
        self._safety.max_score = config.safety_max_score
        if self._lookup is not None:
            self._lookup.limit = config.lookup_limit
            self._lookup.max_score = config.lookup_max_score
        if config.debug != previous.debug:
            self._apply_debug(config.debug)
        if self._state.is_active and config.auto_reload != previous.auto_reload:
            if config.auto_reload:
                self._start_reload_task()
            else:
                self._cancel_reload_task()
        return self.get_config()
