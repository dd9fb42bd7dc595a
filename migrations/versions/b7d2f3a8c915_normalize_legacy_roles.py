"""normalize legacy role strings (admin -> manager, sales_rep -> rep)

Revision ID: b7d2f3a8c915
Revises: a1c4e7f90b2d
Create Date: 2026-10-18 09:30:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "b7d2f3a8c915"
down_revision: Union[str, Sequence[str], None] = "a1c4e7f90b2d"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    bind = op.get_bind()
    insp = sa.inspect(bind)
    if not insp.has_table("users"):
        return

    op.execute("UPDATE users SET role = 'manager' WHERE LOWER(role) = 'admin'")
    op.execute("UPDATE users SET role = 'rep' WHERE LOWER(role) = 'sales_rep'")
    op.execute("UPDATE users SET role = LOWER(role) WHERE role <> LOWER(role)")
    # Only reps report to a manager.
    op.execute("UPDATE users SET manager_id = NULL WHERE role <> 'rep' AND manager_id IS NOT NULL")


def downgrade() -> None:
    # Normalization is one-way; the old spellings carried no extra information.
    pass
