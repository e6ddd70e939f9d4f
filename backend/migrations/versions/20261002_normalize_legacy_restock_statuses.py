"""normalize legacy restock statuses

Revision ID: 20261002_legacy_status
Revises: 20261001_initial
Create Date: 2026-10-02 00:00:00.000000

Rows imported from the older workflow carry pending / accepted / in_transit.
They are rewritten once to the single current vocabulary:
- pending    -> waiting_for_approval
- accepted   -> approved_pending
- in_transit -> approved_pending

Downgrade is a no-op: the legacy names are not reintroduced.
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '20261002_legacy_status'
down_revision = '20261001_initial'
branch_labels = None
depends_on = None


LEGACY_STATUS_MAP = {
    'pending': 'waiting_for_approval',
    'accepted': 'approved_pending',
    'in_transit': 'approved_pending',
}


def upgrade():
    restock_requests = sa.table(
        'restock_requests',
        sa.column('status', sa.String),
        sa.column('version_id', sa.Integer),
    )
    for legacy, current in LEGACY_STATUS_MAP.items():
        op.execute(
            restock_requests.update()
            .where(restock_requests.c.status == legacy)
            .values(status=current, version_id=restock_requests.c.version_id + 1)
        )


def downgrade():
    pass
