"""
Create the database tables, optionally with sample ECOS scenarios

Usage:
    python -m ecosbot.scripts.init_db
    python -m ecosbot.scripts.init_db --seed teacher@example.org
"""
import argparse
import logging
from typing import Optional

from ..core.config import AppConfig
from ..core.logging_setup import configure_logging
from ..database.config import get_db_session, init_database
from ..database.repositories import ScenarioRepository

logger = logging.getLogger(__name__)

SAMPLE_SCENARIOS = [
    {
        "title": "Consultation d'urgence - Douleur thoracique",
        "description": (
            "Patient de 55 ans consultant aux urgences pour une douleur thoracique aiguë. "
            "Évaluation de la prise en charge initiale."
        ),
        "patient_prompt": (
            "Tu es un homme de 55 ans qui arrives aux urgences avec une douleur thoracique qui a commencé "
            "il y a 2 heures. La douleur est intense, située au centre de la poitrine, et irradie vers le "
            "bras gauche. Tu es inquiet car ton père a fait un infarctus à 60 ans. Tu ressens aussi une "
            "légère nausée et transpires un peu."
        ),
        "evaluation_criteria": {
            "anamnese": 25,
            "examen_physique": 20,
            "raisonnement_clinique": 30,
            "communication": 15,
            "gestion_urgence": 10,
        },
    },
    {
        "title": "Traumatisme du poignet",
        "description": (
            "Patient jeune avec traumatisme du poignet suite à une chute. "
            "Évaluation de la prise en charge traumatologique."
        ),
        "patient_prompt": (
            "Tu es un étudiant de 20 ans qui vient de faire une chute en skateboard il y a 1 heure. Tu es "
            "tombé sur les mains et tu as très mal au poignet droit. Tu arrives à bouger les doigts mais le "
            "poignet est gonflé. Tu as des examens importants la semaine prochaine et tu dois pouvoir écrire."
        ),
        "evaluation_criteria": {
            "anamnese": 20,
            "examen_physique": 30,
            "imagerie": 15,
            "raisonnement_clinique": 25,
            "communication": 10,
        },
    },
]


def init_db(config: AppConfig, seed_owner: Optional[str] = None) -> int:
    """Create tables; with ``seed_owner`` add the sample scenarios if none exist."""
    db_config = init_database(config.database_url, create_tables=True)
    if not seed_owner:
        return 0

    with get_db_session(db_config) as db:
        scenarios = ScenarioRepository(db)
        if scenarios.count() > 0:
            logger.info("Scenarios already present, seed skipped")
            return 0
        for sample in SAMPLE_SCENARIOS:
            scenarios.create(created_by=seed_owner.strip().lower(), **sample)
    logger.info(f"Seeded {len(SAMPLE_SCENARIOS)} sample scenarios")
    return len(SAMPLE_SCENARIOS)


def main() -> None:
    parser = argparse.ArgumentParser(description="Initialize the ECOS chatbot database")
    parser.add_argument("--seed", metavar="TEACHER_EMAIL", help="Add sample scenarios owned by this teacher")
    args = parser.parse_args()

    config = AppConfig.from_env()
    configure_logging(config.log_level)
    init_db(config, seed_owner=args.seed)


if __name__ == "__main__":
    main()
