import logging

from sqlmodel import Session, select

from forum.core.db import engine, init_db
from forum.models import Specialty

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

DEFAULT_SPECIALTIES = [
    {
        "name": "Investigação Digital",
        "description": "Análise forense digital, evidências eletrônicas e crimes cibernéticos",
        "icon": "computer",
        "color": "#3B82F6",
    },
    {
        "name": "Análise Criminal",
        "description": "Análise de padrões criminais, inteligência policial e investigação",
        "icon": "search",
        "color": "#EF4444",
    },
    {
        "name": "Documentação",
        "description": "Elaboração de relatórios, documentos oficiais e procedimentos",
        "icon": "file-text",
        "color": "#10B981",
    },
    {
        "name": "Procedimentos Operacionais",
        "description": "Protocolos policiais, operações e procedimentos de campo",
        "icon": "shield",
        "color": "#F59E0B",
    },
]


def seed_specialties(session: Session) -> int:
    """Insert the default specialties that are missing. Returns how many were added."""
    existing = set(session.exec(select(Specialty.name)).all())
    added = 0
    for data in DEFAULT_SPECIALTIES:
        if data["name"] in existing:
            continue
        session.add(Specialty(**data))
        added += 1
    session.commit()
    return added


def init() -> None:
    with Session(engine) as session:
        init_db(session)
        added = seed_specialties(session)
        logger.info("Seeded %d specialties", added)


def main() -> None:
    logger.info("Creating initial data")
    init()
    logger.info("Initial data created")


if __name__ == "__main__":
    main()
