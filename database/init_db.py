import os
import sys

BASE_DIR = os.path.dirname(os.path.dirname(__file__))
if BASE_DIR not in sys.path:
    sys.path.insert(0, BASE_DIR)

from ido_extractor import create_app
from ido_extractor.application.job_service import JobService
from ido_extractor.db import get_db, init_db
from ido_extractor.infrastructure.repositories.auth_repository import AuthRepository


app = create_app()


if __name__ == "__main__":
    with app.app_context():
        init_db()
        seed_email = (os.environ.get("SEED_DEFAULT_JOB_FOR") or "").strip().lower()
        if seed_email:
            db = get_db()
            user = AuthRepository().find_user_by_email(db, seed_email)
            if not user:
                raise RuntimeError(f"SEED_DEFAULT_JOB_FOR points to an unknown user: {seed_email}")
            JobService().ensure_default_job(db, int(user["id"]))
            db.commit()
    print("Database initialized.")
