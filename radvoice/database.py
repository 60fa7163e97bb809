import json
import logging

from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker

from radvoice.config import settings
from radvoice.models import Base, Frase, ReportTemplate

logger = logging.getLogger(__name__)

db_engine = create_engine(
    settings.sqlite_url,
    connect_args={"check_same_thread": False},
    echo=False,
    pool_pre_ping=True,
)

SessionLocal = sessionmaker(bind=db_engine, expire_on_commit=False)


@event.listens_for(db_engine, "connect")
def _set_sqlite_pragma(dbapi_conn, connection_record):
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA synchronous=NORMAL")
    cursor.execute("PRAGMA busy_timeout=30000")
    cursor.close()


# Sample catalog seeded on first run so voice lookups work out of the box
_SEED_TEMPLATES = [
    {
        "id": "tc-torax",
        "title": "TC Tórax",
        "modality": "TC",
        "region": "torax",
        "category": "tomografia",
        "tags": ["pulmao", "torax"],
        "techniques": {
            "SEM": "Exame realizado sem a administração endovenosa do meio de contraste iodado.",
            "EV": "Exame realizado antes e após a administração endovenosa do meio de contraste iodado.",
        },
        "content": (
            "TOMOGRAFIA COMPUTADORIZADA DO TÓRAX\n"
            "TÉCNICA: [técnica]\n"
            "RELATÓRIO: Parênquima pulmonar com atenuação preservada. [achados]\n"
            "IMPRESSÃO: [impressão]"
        ),
    },
    {
        "id": "usg-abdome-total",
        "title": "USG Abdome Total",
        "modality": "USG",
        "region": "abdome",
        "category": "ultrassonografia",
        "tags": ["abdome", "figado", "vesicula"],
        "techniques": {},
        "content": (
            "ULTRASSONOGRAFIA DE ABDOME TOTAL\n"
            "TÉCNICA: Exame realizado com transdutor convexo multifrequencial.\n"
            "RELATÓRIO: Fígado de dimensões normais e contornos regulares. [achados]\n"
            "IMPRESSÃO: [impressão]"
        ),
    },
    {
        "id": "rm-cranio",
        "title": "RM Crânio",
        "modality": "RM",
        "region": "cranio",
        "category": "ressonancia",
        "tags": ["encefalo", "cerebro"],
        "techniques": {"SEM": "Sequências multiplanares ponderadas em T1, T2 e FLAIR."},
        "content": (
            "RESSONÂNCIA MAGNÉTICA DO CRÂNIO\n"
            "TÉCNICA: [técnica]\n"
            "RELATÓRIO: Sulcos e cisternas de amplitude normal. [achados]\n"
            "IMPRESSÃO: [impressão]"
        ),
    },
]

_SEED_FRASES = [
    {
        "id": "esteatose-leve",
        "code": "esteatose_leve",
        "text": "Fígado com aumento difuso da ecogenicidade, compatível com esteatose hepática leve.",
        "category": "figado",
        "modality_code": "USG",
        "region_code": "abdome",
        "tags": ["esteatose", "figado gorduroso"],
        "synonyms": ["esteatose", "infiltração gordurosa"],
        "conclusion": "Esteatose hepática leve.",
    },
    {
        "id": "colelitiase",
        "code": "colelitiase",
        "text": "Vesícula biliar com cálculos móveis, o maior medindo [medida] cm.",
        "category": "vesicula",
        "modality_code": "USG",
        "region_code": "abdome",
        "tags": ["calculo", "vesicula"],
        "synonyms": ["litiase biliar"],
        "conclusion": "Colelitíase.",
    },
    {
        "id": "nodulo-pulmonar",
        "code": "nodulo_pulmonar",
        "text": "Nódulo pulmonar sólido no [lobo], medindo [medida] mm.",
        "category": "pulmao",
        "modality_code": "TC",
        "region_code": "torax",
        "tags": ["nodulo", "pulmao"],
        "synonyms": ["nodulo solido"],
        "conclusion": None,
    },
]


def seed_catalog(session) -> tuple[int, int]:
    """Insert the sample templates and phrases when the tables are empty."""
    templates = frases = 0
    if session.query(ReportTemplate).count() == 0:
        for t in _SEED_TEMPLATES:
            session.add(ReportTemplate(
                id=t["id"],
                title=t["title"],
                modality=t["modality"],
                region=t["region"],
                category=t["category"],
                tags_json=json.dumps(t["tags"], ensure_ascii=False),
                techniques_json=json.dumps(t["techniques"], ensure_ascii=False),
                content=t["content"],
            ))
            templates += 1
    if session.query(Frase).count() == 0:
        for f in _SEED_FRASES:
            session.add(Frase(
                id=f["id"],
                code=f["code"],
                text=f["text"],
                category=f["category"],
                modality_code=f["modality_code"],
                region_code=f["region_code"],
                tags_json=json.dumps(f["tags"], ensure_ascii=False),
                synonyms_json=json.dumps(f["synonyms"], ensure_ascii=False),
                conclusion=f["conclusion"],
            ))
            frases += 1
    session.commit()
    return templates, frases


def init_db():
    settings.sqlite_db_path.parent.mkdir(parents=True, exist_ok=True)
    Base.metadata.create_all(db_engine)

    # Seed global settings from .env on first run
    from radvoice.config_store import get_config_store
    get_config_store().seed_from_env()

    with SessionLocal() as session:
        templates, frases = seed_catalog(session)
        if templates or frases:
            logger.info("Seeded %d template(s) and %d phrase(s)", templates, frases)

    logger.info("Database initialized at %s", settings.sqlite_db_path)

