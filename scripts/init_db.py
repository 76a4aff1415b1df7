import os
import sys
from pathlib import Path

from werkzeug.security import generate_password_hash

# Ensure repo root is on sys.path when running as a script.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.zv.constants import ROLE_SUPERADMIN
from app.zv.models import User
from app.zv.modules.shop.models import Product
from scripts._db_utils import resolve_db_url, script_session

DEFAULT_PRODUCTS = (
    {
        "sku": "BP_SINGLE",
        "title": "Разовый абонемент",
        "description": "Одна игровая сессия.",
        "price_rub": 500,
        "bp_uses_total": 1,
        "sort_index": 10,
        "meta": {"kind": "SINGLE"},
    },
    {
        "sku": "BP_FOUR",
        "title": "Абонемент на 4 игры",
        "description": "Четыре игровые сессии в любых группах.",
        "price_rub": 1800,
        "bp_uses_total": 4,
        "sort_index": 20,
        "meta": {"kind": "FOUR"},
    },
    {
        "sku": "BP_SEASON",
        "title": "Сезонный абонемент",
        "description": "Игры на весь активный сезон.",
        "price_rub": 4500,
        "bp_uses_total": 12,
        "sort_index": 30,
        "season_required": True,
        "meta": {"kind": "SEASON"},
    },
)


def seed_only(*, database_url: str | None = None) -> None:
    """
    Seed the superadmin account and default battlepass products in an idempotent way.
    Does NOT overwrite an existing admin user's password.
    """
    admin_email = (os.environ.get("ADMIN_EMAIL") or "admin@zv.local").strip().lower()
    admin_password = os.environ.get("ADMIN_PASSWORD") or "change-me"

    # Direct engine/session so this can run in release without importing app.wsgi.
    with script_session(resolve_db_url(database_url)) as s:
        admin = s.query(User).filter(User.email == admin_email).one_or_none()
        if not admin:
            admin = User(
                email=admin_email,
                password_hash=generate_password_hash(admin_password),
                name="Administrator",
                is_active=True,
            )
            s.add(admin)
            print(f"Created admin user {admin_email}", flush=True)
        if admin.add_role(ROLE_SUPERADMIN):
            print(f"Granted SUPERADMIN to {admin_email}", flush=True)

        for spec in DEFAULT_PRODUCTS:
            if s.query(Product.id).filter(Product.sku == spec["sku"]).first():
                continue
            s.add(Product(type="BATTLEPASS", visible=True, active=True, **spec))
            print(f"Created product {spec['sku']}", flush=True)


def main() -> None:
    from app.zv.models import Base
    from scripts._db_utils import create_script_engine

    db_url = resolve_db_url()
    if db_url.startswith("sqlite"):
        # Local dev convenience: create tables without running alembic.
        engine = create_script_engine(db_url)
        Base.metadata.create_all(engine)
        engine.dispose()
    seed_only(database_url=db_url)
    print("init_db complete.", flush=True)


if __name__ == "__main__":
    main()
