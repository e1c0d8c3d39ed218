"""CLI script to load demo accounts, packs and subscriptions into the DB.

Usage: python scripts/seed.py [--database-url URL]

Running it twice is harmless: records that already exist are skipped.
Seeded subscriptions go through the subscription engine, so their
payment ledger matches `amount_paid`.
"""
import argparse
import pathlib
import sys
from typing import Optional

# Ensure `backend/` is on sys.path so `thesis_api` imports work when running this script directly
ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from thesis_api import models, repositories  # noqa: E402
from thesis_api.config import Settings  # noqa: E402
from thesis_api.database import Database  # noqa: E402
from thesis_api.models import MemoirePhase, Role  # noqa: E402
from thesis_api.services import PWD_CTX  # noqa: E402
from thesis_api.subscriptions import SubscriptionEngine  # noqa: E402

USERS = [
    ("admin@cledumemoire.sn", "admin123", "Administrateur", "Système", Role.ADMIN, "+221 77 000 0000", None, None),
    ("coach1@cledumemoire.sn", "coach123", "Amadou", "Diallo", Role.ACCOMPAGNATEUR, "+221 77 111 1111", "UCAD", "Sciences de Gestion"),
    ("coach2@cledumemoire.sn", "coach123", "Fatou", "Ndiaye", Role.ACCOMPAGNATEUR, "+221 77 222 2222", "UGB", "Informatique"),
    ("etudiant1@test.sn", "student123", "Moussa", "Diop", Role.STUDENT, "+221 78 333 3333", "UCAD", "Master Informatique"),
    ("etudiant2@test.sn", "student123", "Aïssatou", "Ba", Role.STUDENT, "+221 78 444 4444", "ESP", "Master Marketing"),
]

PACKS = [
    {
        "id": "pack-demarrage",
        "name": "Pack Démarrage",
        "description": "Idéal pour bien démarrer votre mémoire. Inclut le choix du sujet, la problématique et le plan détaillé.",
        "price": 50000,
        "features": [
            "Aide au choix du sujet",
            "Formulation de la problématique",
            "Élaboration du plan détaillé",
            "Recherche bibliographique guidée",
            "2 séances de coaching",
        ],
        "sort_order": 1,
    },
    {
        "id": "pack-redaction",
        "name": "Pack Rédaction",
        "description": "Accompagnement complet de la rédaction. Paiement en 2 tranches : 75 000 FCFA + 25 000 FCFA.",
        "price": 100000,
        "installment1": 75000,
        "installment2": 25000,
        "features": [
            "Accompagnement rédactionnel complet",
            "Relecture de chaque chapitre",
            "Corrections et suggestions",
            "Mise en forme académique",
            "6 séances de coaching",
            "Support WhatsApp illimité",
        ],
        "sort_order": 2,
    },
    {
        "id": "pack-soutenance",
        "name": "Pack Soutenance",
        "description": "Préparation intensive à la soutenance. Entraînement, slides et simulation.",
        "price": 65000,
        "features": [
            "Préparation des slides de présentation",
            "Simulation de soutenance",
            "Coaching prise de parole",
            "Anticipation des questions du jury",
            "3 séances de simulation",
        ],
        "sort_order": 3,
    },
    {
        "id": "pack-complet",
        "name": "Pack Complet",
        "description": "L'accompagnement ultime du début à la fin. Paiement en 2 tranches : 100 000 FCFA + 50 000 FCFA.",
        "price": 150000,
        "installment1": 100000,
        "installment2": 50000,
        "features": [
            "Tout le Pack Démarrage",
            "Tout le Pack Rédaction",
            "Tout le Pack Soutenance",
            "Accompagnateur dédié",
            "Coaching illimité",
            "Priorité de traitement",
            "Garantie satisfaction",
        ],
        "sort_order": 4,
    },
]

# (student email, pack id, confirmed amount, force activation, coach email, title, phase, percent, notes)
ENROLMENTS = [
    ("etudiant1@test.sn", "pack-complet", 100000, True, "coach1@cledumemoire.sn",
     "Impact de la digitalisation sur les PME sénégalaises", MemoirePhase.CHAPTER2, 55,
     "Bon avancement. Le chapitre 2 est en cours de rédaction."),
    ("etudiant2@test.sn", "pack-demarrage", 50000, False, "coach2@cledumemoire.sn",
     "Stratégies de marketing digital pour les startups africaines", MemoirePhase.OUTLINE, 15,
     "Plan détaillé en cours de validation."),
]


def seed(db: Database) -> dict:
    """Insert the demo dataset; returns counts of what was created."""
    created = {"users": 0, "packs": 0, "subscriptions": 0}
    with db.session() as session:
        user_repo = repositories.UserRepository(session)
        pack_repo = repositories.PackRepository(session)
        for email, password, first, last, role, phone, university, field in USERS:
            if user_repo.get_by_email(email):
                continue
            user_repo.create(models.User(
                email=email,
                password_hash=PWD_CTX.hash(password),
                first_name=first,
                last_name=last,
                role=role,
                phone=phone,
                university=university,
                field=field,
            ))
            created["users"] += 1
        for data in PACKS:
            if pack_repo.get(data["id"]):
                continue
            pack_repo.save(models.Pack(**data))
            created["packs"] += 1

        engine = SubscriptionEngine(session)
        memoires = repositories.MemoireRepository(session)
        for email, pack_id, amount, force, coach_email, title, phase, percent, notes in ENROLMENTS:
            student = user_repo.get_by_email(email)
            if engine.list_for_user(student.id):
                continue
            sub = engine.subscribe(student, pack_id)
            sub = engine.record_confirmed_payment(sub.id, amount)
            if force:
                engine.activate(sub.id)
            created["subscriptions"] += 1
            memoires.save(models.MemoireProgress(
                student_id=student.id,
                accompagnateur_id=user_repo.get_by_email(coach_email).id,
                title=title,
                phase=phase,
                progress_percent=percent,
                notes=notes,
            ))
    return created


def main(database_url: Optional[str] = None):
    settings = Settings()
    db = Database(database_url or settings.DATABASE_URL)
    db.create_db_and_tables()
    try:
        created = seed(db)
    finally:
        db.dispose()
    print(f"Seeded {created['users']} users, {created['packs']} packs, {created['subscriptions']} subscriptions")
    print("  - Admin: admin@cledumemoire.sn / admin123")
    print("  - Coach: coach1@cledumemoire.sn / coach123")
    print("  - Student: etudiant1@test.sn / student123")


if __name__ == '__main__':
    parser = argparse.ArgumentParser(description='Load demo data into the database')
    parser.add_argument('--database-url', help='override DATABASE_URL')
    args = parser.parse_args()
    main(args.database_url)
