"""
Bootstrap full schema using SQLAlchemy metadata.

Revision ID: 0001_pitstop_bootstrap
Revises:
Create Date: 2024-05-01
"""

from alembic import op

# revision identifiers, used by Alembic.
revision = "0001_pitstop_bootstrap"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    """Create all tables defined in SQLAlchemy metadata."""
    from app.db.base import Base
    from app.db import models  # noqa: F401

    bind = op.get_bind()
    Base.metadata.create_all(bind=bind)


def downgrade():
    """Drop all tables defined in SQLAlchemy metadata."""
    from app.db.base import Base
    from app.db import models  # noqa: F401

    bind = op.get_bind()
    Base.metadata.drop_all(bind=bind)
