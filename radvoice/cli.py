"""Click CLI for RadVoice."""

import asyncio
import logging
import sys

import click

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-8s %(name)s - %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)


def _build_engine(with_catalog: bool = True):
    from radvoice.config_store import get_config_store
    from radvoice.database import SessionLocal, init_db
    from radvoice.engine.lookup import SqlCatalog
    from radvoice.engine.orchestrator import VoiceCommandEngine

    init_db()
    config = get_config_store().get_engine_config()
    catalog = SqlCatalog(SessionLocal) if with_catalog else None
    engine = VoiceCommandEngine(config, catalog_search=catalog)
    if not engine.load_commands():
        click.echo("Failed to load voice commands.", err=True)
        sys.exit(1)
    return engine


@click.group()
def cli():
    """RadVoice: voice commands for radiology report dictation."""


@cli.command()
def init_db():
    """Create SQLite schema and seed the sample template/phrase catalog."""
    from radvoice.database import init_db
    init_db()
    click.echo("Database initialized successfully.")


@cli.command()
@click.option("--category", default=None, help="Only list this category")
@click.option("--modality", default=None, help="Only list commands tied to this modality")
def commands(category, modality):
    """List the voice command catalog grouped by category."""
    from radvoice.config import settings
    from radvoice.engine.catalog import build_catalog, filter_commands_by_category, filter_commands_by_modality
    from radvoice.engine.commands import CommandCategory

    catalog = build_catalog(settings.commands_path)
    if modality:
        catalog = filter_commands_by_modality(catalog, modality)
    for cat in CommandCategory:
        if category and cat.value != category:
            continue
        cmds = filter_commands_by_category(catalog, cat)
        if not cmds:
            continue
        click.echo(f"\n{cat.value.upper()} ({len(cmds)})")
        for c in cmds:
            phrases = ", ".join(c.phrases)
            click.echo(f"  {c.id:26s} {c.name:28s} p={c.priority:3d}  [{phrases}]")
    click.echo(f"\nTotal: {len(catalog)} commands")


@cli.command()
@click.argument("text")
def match(text):
    """Show how TEXT would be matched and whether it is safe to execute."""
    from radvoice.config import settings
    from radvoice.engine.catalog import build_catalog
    from radvoice.engine.matcher import FuzzyMatcher
    from radvoice.engine.safety import SafetyGuard

    config = settings.get_engine_config()
    matcher = FuzzyMatcher(config.fuzzy_threshold)
    matcher.update_commands(build_catalog(config.commands_path))
    result = matcher.find_best_match(text)
    if result is None:
        click.echo("No match.")
        return

    guard = SafetyGuard(config.safety_max_score)
    verdict = guard.validate_system_command(result, text)
    accepted = result.is_exact or result.score <= config.min_match_score
    click.echo(f"Command:   {result.command.id} ({result.command.name})")
    click.echo(f"Phrase:    {result.matched_phrase}")
    click.echo(f"Score:     {result.score:.3f}{'  (exact)' if result.is_exact else ''}")
    click.echo(f"Accepted:  {'yes' if accepted else 'no'} (threshold {config.min_match_score})")
    click.echo(f"Safe:      {'yes' if verdict.safe else 'no'}{f' - {verdict.reason}' if verdict.reason else ''}")
    click.echo(f"Action:    {guard.get_recommended_action(result, text).value if accepted else 'insert_text'}")


@cli.command()
@click.argument("text")
def intent(text):
    """Classify TEXT as TEMPLATE, FRASE or TEXT intent."""
    from radvoice.engine.intent import detect_intent

    detected = detect_intent(text)
    click.echo(f"Type:       {detected.type.value}")
    click.echo(f"Query:      {detected.query!r}")
    click.echo(f"Confidence: {detected.confidence:.2f}")
    if detected.prefix:
        click.echo(f"Prefix:     {detected.prefix}")


@cli.command()
@click.argument("kind", type=click.Choice(["templates", "frases"]))
@click.argument("query")
@click.option("--modality", default=None, help="Context modality (USG, TC, RM, ...)")
@click.option("--region", default=None, help="Context region (abdome, torax, ...)")
@click.option("--limit", default=5, type=int, help="Max results")
def search(kind, query, modality, region, limit):
    """Search the template or phrase catalog the way voice lookups do."""
    from radvoice.database import SessionLocal, init_db
    from radvoice.engine.lookup import SearchContext, SqlCatalog

    init_db()
    catalog = SqlCatalog(SessionLocal)
    context = SearchContext(modality=modality, region=region)
    if kind == "templates":
        results = asyncio.run(catalog.search_templates(query, context, limit))
        for t in results:
            click.echo(f"  {t.score:.3f}  {t.id:24s} {t.title}  [{t.modality or '-'} / {t.region or '-'}]")
            if t.techniques:
                click.echo(f"         techniques: {', '.join(t.techniques)}")
    else:
        results = asyncio.run(catalog.search_frases(query, context, limit))
        for f in results:
            click.echo(f"  {f.score:.3f}  {f.code:24s} {f.text[:70]}")

    if not results:
        click.echo("No results.")


@cli.command()
@click.option("--auto-apply/--no-auto-apply", default=True, help="Apply the best template/phrase hit")
@click.option("--debug", is_flag=True, help="Log match scores and dispatch")
def dictate(auto_apply, debug):
    """Read utterances from stdin, one per line, against an in-memory report."""
    from radvoice.engine.document import InMemoryDocument

    engine = _build_engine()
    engine.set_config(auto_apply_lookup=auto_apply, debug=debug or engine.config.debug)
    document = InMemoryDocument()
    engine.attach(document)
    engine.start()

    async def _run():
        for line in click.get_text_stream("stdin"):
            utterance = line.strip()
            if not utterance:
                continue
            outcome = await engine.handle_utterance(utterance)
            label = outcome.intent.type.value if outcome.intent else "-"
            if outcome.execution is not None:
                status = "ok" if outcome.execution.success else f"failed: {outcome.execution.message}"
                click.echo(f"[{label}] {utterance!r} -> {outcome.execution.command.id} ({status})")
                if outcome.execution.message and outcome.execution.success:
                    click.echo(outcome.execution.message)
            elif outcome.candidates:
                click.echo(f"[{label}] {utterance!r} -> {len(outcome.candidates)} candidate(s)")
            else:
                click.echo(f"[{label}] {utterance!r}")
            click.echo("-" * 60)
            click.echo(document.text)
            click.echo("-" * 60)

    try:
        asyncio.run(_run())
    finally:
        engine.dispose()


@cli.command()
def run_web():
    """Start the FastAPI web interface."""
    import uvicorn
    from radvoice.config import settings
    from radvoice.database import init_db
    init_db()
    uvicorn.run(
        "radvoice.web.app:app",
        host=settings.web_host,
        port=settings.web_port,
        reload=False,
    )


if __name__ == "__main__":
    cli()
