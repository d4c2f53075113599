import os

from mktops.core.security import get_password_hash
from mktops.db import models
from mktops.db.init_db import ensure_permission_defaults, ensure_schema
from mktops.db.session import SessionLocal, engine
from mktops.services.permissions import MAX_PERMISSION_LEVEL


def main() -> None:
    email = os.getenv("ADMIN_BOOTSTRAP_EMAIL")
    password = os.getenv("ADMIN_BOOTSTRAP_PASSWORD")
    name = os.getenv("ADMIN_BOOTSTRAP_NAME", "Administrador")
    if not email or not password:
        raise SystemExit("ADMIN_BOOTSTRAP_EMAIL e ADMIN_BOOTSTRAP_PASSWORD sao obrigatorios.")
    email = email.strip().lower()

    ensure_schema(engine)
    db = SessionLocal()
    try:
        profile = db.query(models.Profile).filter(models.Profile.email == email).first()
        if not profile:
            profile = models.Profile(email=email, name=name)
            db.add(profile)
        profile.password_hash = get_password_hash(password)
        profile.role = "admin"
        profile.permission_level = MAX_PERMISSION_LEVEL
        profile.status = "active"
        db.commit()
        ensure_permission_defaults(db)
        print(f"Admin ativo: {profile.email}")
    finally:
        db.close()


if __name__ == "__main__":
    main()
