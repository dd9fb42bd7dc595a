import os
import sys
from pathlib import Path

from werkzeug.security import generate_password_hash

# Ensure repo root is on sys.path when running as a script.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.knockbase import store  # noqa: E402
from app.knockbase.audit import record_event  # noqa: E402
from app.knockbase.constants import ActorRole  # noqa: E402
from app.knockbase.db import script_session  # noqa: E402
from app.knockbase.models import User  # noqa: E402


def seed_only(*, database_url: str | None = None) -> None:
    """
    Seed the first owner account in an idempotent way.
    Does NOT overwrite an existing owner's password.
    """
    owner_email = (os.environ.get("OWNER_EMAIL") or "owner@knockbase.local").strip().lower()
    owner_password = os.environ.get("OWNER_PASSWORD") or "change-me"

    db_url = (database_url or os.environ.get("DATABASE_URL") or "sqlite:///knockbase.db").strip()

    with script_session(db_url) as s:
        user = store.find_actor_by_login(s, owner_email)
        if not user:
            user = store.create_actor(
                s,
                username=owner_email,
                email=owner_email,
                password_hash=generate_password_hash(owner_password),
                full_name="Owner",
                role=ActorRole.OWNER,
                is_active=True,
            )
            record_event(s, actor=None, action="user.seed", entity_type="User", entity_id=str(user.id))
        elif user.role is not ActorRole.OWNER:
            # An existing account under the seed email is promoted, never demoted.
            store.update_actor(s, user.id, {"role": ActorRole.OWNER, "manager_id": None})

        owners = store.list_actors(s, User.role == ActorRole.OWNER)

    print("Initialized database (seed_only).")
    print(f"Owner email: {owner_email}")
    print("Owner password: (from OWNER_PASSWORD)")
    print(f"Owner accounts: {len(owners)}")


def main() -> None:
    seed_only(database_url=None)


if __name__ == "__main__":
    main()
