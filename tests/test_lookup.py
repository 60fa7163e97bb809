"""Tests for template/phrase lookup: query cleanup, ranking and the SQL catalog."""

import asyncio
import datetime

import pytest


def _templates():
    from radvoice.engine.lookup import TemplateCandidate

    return [
        TemplateCandidate(
            id="usg-abdome-total", title="USG Abdome Total", content="ULTRASSONOGRAFIA DE ABDOME TOTAL",
            modality="USG", region="abdome", tags=["figado"],
        ),
        TemplateCandidate(
            id="tc-abdome", title="TC Abdome", content="TOMOGRAFIA DO ABDOME",
            modality="TC", region="abdome",
        ),
        TemplateCandidate(
            id="tc-torax", title="TC Tórax", content="TOMOGRAFIA DO TÓRAX",
            modality="TC", region="torax", tags=["pulmao"],
        ),
    ]


def _frases():
    from radvoice.engine.lookup import FraseCandidate

    return [
        FraseCandidate(
            id="esteatose-leve", code="esteatose_leve", text="Fígado com aumento da ecogenicidade.",
            modality="USG", region="abdome", synonyms=["infiltração gordurosa"],
            conclusion="Esteatose hepática leve.",
        ),
        FraseCandidate(
            id="nodulo-pulmonar", code="nodulo_pulmonar", text="Nódulo sólido no [lobo].",
            modality="TC", region="torax",
        ),
    ]


class TestQuery:
    def test_normalize_query_drops_prefixes_and_filler(self):
        from radvoice.engine.lookup import normalize_query

        assert normalize_query("modelo de USG do abdome total") == "usg abdome"
        assert normalize_query("  Frase   Esteatose ") == "esteatose"

    def test_expand_synonyms(self):
        from radvoice.engine.lookup import expand_query_with_synonyms

        assert expand_query_with_synonyms("tomografia torax") == "tc torax"
        assert expand_query_with_synonyms("ressonancia cranio") == "rm cranio"
        assert expand_query_with_synonyms("usg abdome") == "usg abdome"

    @pytest.mark.parametrize("query, expected", [
        ("raio x torax", ("RX", "torax")),
        ("ultrassom abdominal", ("USG", "abdome")),
        ("cerebro", (None, "cranio")),
        ("laudo livre", (None, None)),
    ])
    def test_extract_modality_and_region(self, query, expected):
        from radvoice.engine.lookup import extract_modality_and_region

        assert extract_modality_and_region(query) == expected


class TestBoosts:
    def test_context_boost(self):
        from radvoice.engine.lookup import SearchContext, apply_context_boost

        context = SearchContext(modality="TC", region="torax")
        assert apply_context_boost(0.5, "TC", "torax", context) == pytest.approx(0.2)
        assert apply_context_boost(0.5, "tc", "abdome", context) == pytest.approx(0.35)
        assert apply_context_boost(0.5, "RM", "TORAX", context) == pytest.approx(0.425)
        assert apply_context_boost(0.5, "USG", "abdome", context) == 0.5
        assert apply_context_boost(0.5, "TC", "torax", SearchContext()) == 0.5

    def test_usage_boost(self):
        from radvoice.engine.lookup import UsageData, apply_usage_boost

        now = datetime.datetime(2026, 3, 5)
        assert apply_usage_boost(1.0, None) == 1.0
        assert apply_usage_boost(1.0, UsageData(favorite=True)) == pytest.approx(0.8)
        assert apply_usage_boost(1.0, UsageData(usage_count=25)) == pytest.approx(0.85)
        assert apply_usage_boost(1.0, UsageData(usage_count=1, last_used_at=now), now) == pytest.approx(0.85)

        two_weeks_ago = now - datetime.timedelta(days=15)
        assert apply_usage_boost(1.0, UsageData(usage_count=1, last_used_at=two_weeks_ago), now) == pytest.approx(0.925)

        long_ago = now - datetime.timedelta(days=365)
        assert apply_usage_boost(1.0, UsageData(usage_count=1, last_used_at=long_ago), now) == pytest.approx(0.985)


class TestRankTemplates:
    def test_title_hit(self):
        from radvoice.engine.lookup import rank_templates

        results = rank_templates("tc tórax", _templates())
        assert results[0].id == "tc-torax"
        assert results[0].score == pytest.approx(0.1)

    def test_spoken_modality_is_expanded(self):
        from radvoice.engine.lookup import rank_templates

        assert rank_templates("tomografia do tórax", _templates())[0].id == "tc-torax"

    def test_shorter_title_wins_ties(self):
        from radvoice.engine.lookup import rank_templates

        results = rank_templates("abdome", _templates())
        assert [t.id for t in results[:2]] == ["tc-abdome", "usg-abdome-total"]

    def test_context_reorders(self):
        from radvoice.engine.lookup import SearchContext, rank_templates

        results = rank_templates("abdome", _templates(), SearchContext(modality="USG", region="abdome"))
        assert [t.id for t in results[:2]] == ["usg-abdome-total", "tc-abdome"]
        assert results[0].score == pytest.approx(0.04)
        assert results[1].score == pytest.approx(0.085)

    def test_favourite_reorders(self):
        from radvoice.engine.lookup import SearchContext, UsageData, rank_templates

        context = SearchContext(usage={"usg-abdome-total": UsageData(favorite=True)})
        assert rank_templates("abdome", _templates(), context)[0].id == "usg-abdome-total"

    def test_limit(self):
        from radvoice.engine.lookup import rank_templates

        assert len(rank_templates("abdome", _templates(), limit=1)) == 1

    def test_modality_region_fallback(self):
        from radvoice.engine.lookup import rank_templates

        results = rank_templates("tomografia torax", _templates(), max_score=0.05)
        assert [t.id for t in results] == ["tc-torax"]
        assert results[0].score == pytest.approx(0.05)

        results = rank_templates("ressonancia abdome", _templates(), max_score=0.05)
        assert results == []

    def test_nothing_found(self):
        from radvoice.engine.lookup import rank_templates

        assert rank_templates("joelho", _templates()) == []
        assert rank_templates("", _templates()) == []
        assert rank_templates("abdome", []) == []


class TestRankFrases:
    def test_code_and_synonym_hits(self):
        from radvoice.engine.lookup import rank_frases

        assert rank_frases("esteatose", _frases())[0].id == "esteatose-leve"
        assert rank_frases("infiltração gordurosa", _frases())[0].id == "esteatose-leve"
        assert rank_frases("frase nódulo pulmonar", _frases())[0].id == "nodulo-pulmonar"

    def test_code_fallback(self):
        from radvoice.engine.lookup import rank_frases

        results = rank_frases("nodulo pulmonar", _frases(), max_score=0.05)
        assert [f.id for f in results] == ["nodulo-pulmonar"]
        assert results[0].score == pytest.approx(0.05)

    def test_nothing_found(self):
        from radvoice.engine.lookup import rank_frases

        assert rank_frases("", _frases()) == []


def test_render_technique():
    from radvoice.engine.lookup import TemplateCandidate

    template = TemplateCandidate(
        id="t", title="TC", content="TÉCNICA: [técnica]", techniques={"EV": "Com contraste."},
    )
    assert template.render("EV") == "TÉCNICA: Com contraste."
    assert template.render("XX") == "TÉCNICA: [técnica]"
    assert template.render() == "TÉCNICA: [técnica]"


class TestSqlCatalog:
    def test_search_templates(self, session_factory):
        from radvoice.engine.lookup import SqlCatalog

        catalog = SqlCatalog(session_factory)
        results = asyncio.run(catalog.search_templates("tc tórax"))
        assert results[0].id == "tc-torax"
        assert results[0].techniques["EV"].startswith("Exame realizado")
        assert "[técnica]" in results[0].content

    def test_search_frases(self, session_factory):
        from radvoice.engine.lookup import SqlCatalog

        catalog = SqlCatalog(session_factory)
        results = asyncio.run(catalog.search_frases("colelitíase"))
        assert results[0].id == "colelitiase"
        assert results[0].conclusion == "Colelitíase."

    def test_inactive_rows_are_skipped(self, session_factory):
        from radvoice.engine.lookup import SqlCatalog
        from radvoice.models import ReportTemplate

        with session_factory() as session:
            session.get(ReportTemplate, "tc-torax").active = False
            session.commit()

        results = asyncio.run(SqlCatalog(session_factory).search_templates("tc tórax"))
        assert "tc-torax" not in [t.id for t in results]

    def test_record_usage(self, session_factory):
        from radvoice.engine.lookup import CatalogKind, SqlCatalog
        from radvoice.models import UsageRecord

        catalog = SqlCatalog(session_factory)
        asyncio.run(catalog.record_usage(CatalogKind.TEMPLATE, "tc-torax"))
        asyncio.run(catalog.record_usage(CatalogKind.TEMPLATE, "tc-torax"))

        with session_factory() as session:
            record = session.query(UsageRecord).filter_by(kind="template", item_id="tc-torax").one()
            assert record.usage_count == 2
            assert record.last_used_at is not None

    def test_toggle_favorite(self, session_factory):
        from radvoice.engine.lookup import CatalogKind, SqlCatalog

        catalog = SqlCatalog(session_factory)
        assert asyncio.run(catalog.toggle_favorite(CatalogKind.FRASE, "colelitiase")) is True
        assert asyncio.run(catalog.toggle_favorite(CatalogKind.FRASE, "colelitiase")) is False

    @staticmethod
    def _add_cysts(session_factory):
        from radvoice.models import Frase

        with session_factory() as session:
            session.add(Frase(id="cisto-a", code="cisto_simples", text="Cisto simples.", category="achados"))
            session.add(Frase(id="cisto-b", code="cisto_renal_simples", text="Cisto renal simples.", category="achados"))
            session.commit()

    def test_favourite_raises_rank(self, session_factory):
        from radvoice.engine.lookup import CatalogKind, SqlCatalog

        self._add_cysts(session_factory)
        catalog = SqlCatalog(session_factory)
        results = asyncio.run(catalog.search_frases("cisto"))
        assert [f.id for f in results] == ["cisto-a", "cisto-b"]
        assert results[0].score == results[1].score == 0.1

        asyncio.run(catalog.toggle_favorite(CatalogKind.FRASE, "cisto-b"))
        results = asyncio.run(catalog.search_frases("cisto"))
        assert [f.id for f in results] == ["cisto-b", "cisto-a"]
        assert results[0].score == pytest.approx(0.08)

    def test_recorded_usage_raises_rank(self, session_factory):
        from radvoice.engine.lookup import CatalogKind, SqlCatalog

        self._add_cysts(session_factory)
        catalog = SqlCatalog(session_factory)
        asyncio.run(catalog.record_usage(CatalogKind.FRASE, "cisto-b"))

        results = asyncio.run(catalog.search_frases("cisto"))
        assert [f.id for f in results] == ["cisto-b", "cisto-a"]
        assert results[0].score < 0.1
        assert results[0].score == pytest.approx(0.085, abs=1e-3)
        assert results[1].score == 0.1

    def test_toggle_favorite_unknown_item(self, session_factory):
        from radvoice.engine.lookup import CatalogKind, SqlCatalog
        from radvoice.models import UsageRecord

        catalog = SqlCatalog(session_factory)
        with pytest.raises(LookupError):
            asyncio.run(catalog.toggle_favorite(CatalogKind.FRASE, "tc-torax"))
        with session_factory() as session:
            assert session.query(UsageRecord).count() == 0

    def test_usage_timestamps_are_naive_utc(self, session_factory):
        from radvoice.engine.lookup import CatalogKind, SqlCatalog
        from radvoice.models import UsageRecord

        before = datetime.datetime.now(datetime.timezone.utc).replace(tzinfo=None)
        asyncio.run(SqlCatalog(session_factory).record_usage(CatalogKind.FRASE, "colelitiase"))
        with session_factory() as session:
            record = session.query(UsageRecord).filter_by(item_id="colelitiase").one()
        assert record.last_used_at.tzinfo is None
        assert abs((record.last_used_at - before).total_seconds()) < 60


class TestDynamicLookup:
    def test_routes_by_intent(self, make_catalog):
        from radvoice.engine.intent import DetectedIntent, IntentType
        from radvoice.engine.lookup import DynamicLookup, FraseCandidate, SearchContext

        frase = FraseCandidate(id="f", code="f", text="texto", score=0.2)
        catalog = make_catalog(frases=[frase])
        lookup = DynamicLookup(catalog, limit=3)
        context = SearchContext(modality="USG")

        results = asyncio.run(lookup.search(DetectedIntent(IntentType.FRASE, "esteatose", 0.95, "frase esteatose"), context))
        assert results == [frase]
        assert catalog.calls == [("frases", "esteatose", context)]

    def test_empty_query_skips_catalog(self, make_catalog):
        from radvoice.engine.intent import DetectedIntent, IntentType
        from radvoice.engine.lookup import DynamicLookup

        catalog = make_catalog()
        lookup = DynamicLookup(catalog)
        assert asyncio.run(lookup.search(DetectedIntent(IntentType.TEMPLATE, "", 0.7, "modelo"))) == []
        assert catalog.calls == []

    def test_text_intent_is_rejected(self, make_catalog):
        from radvoice.engine.intent import DetectedIntent, IntentType
        from radvoice.engine.lookup import DynamicLookup

        lookup = DynamicLookup(make_catalog())
        with pytest.raises(ValueError):
            asyncio.run(lookup.search(DetectedIntent(IntentType.TEXT, "vírgula", 1.0, "vírgula")))

    def test_best(self, make_catalog):
        from radvoice.engine.lookup import DynamicLookup, TemplateCandidate

        lookup = DynamicLookup(make_catalog(), max_score=0.65)
        good = TemplateCandidate(id="a", title="A", content="", score=0.65)
        weak = TemplateCandidate(id="b", title="B", content="", score=0.66)
        assert lookup.best([good, weak]) is good
        assert lookup.best([weak]) is None
        assert lookup.best([]) is None
