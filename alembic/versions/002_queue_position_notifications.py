"""allow queue_position notifications

Revision ID: 002
Revises: 001
Create Date: 2026-10-18 15:00:00.000000

"""

from typing import Sequence, Union

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "002"
down_revision: Union[str, None] = "001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

PREVIOUS_CATEGORIES = (
    "'appointment_confirmation', 'appointment_rescheduled', "
    "'queue_update', 'appointment_cancelled', 'appointment_call'"
)


def upgrade() -> None:
    """Add the 'second in the queue' notification category."""
    op.drop_constraint("ck_notifications_category", "notifications", type_="check")
    op.create_check_constraint(
        "ck_notifications_category",
        "notifications",
        f"category IN ({PREVIOUS_CATEGORIES}, 'queue_position')",
    )


def downgrade() -> None:
    op.execute("DELETE FROM notifications WHERE category = 'queue_position'")
    op.drop_constraint("ck_notifications_category", "notifications", type_="check")
    op.create_check_constraint(
        "ck_notifications_category",
        "notifications",
        f"category IN ({PREVIOUS_CATEGORIES})",
    )
