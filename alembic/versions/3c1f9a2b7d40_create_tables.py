"""create users, posts and tags tables

Revision ID: 3c1f9a2b7d40
Revises: 
Create Date: 2026-10-19 09:12:31.408112

"""
from typing import Sequence, Union

from alembic import op
from postboard.database import Base
from postboard.models import post, user  # noqa: F401


# revision identifiers, used by Alembic.
revision: str = '3c1f9a2b7d40'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema by creating all tables."""
    bind = op.get_bind()
    Base.metadata.create_all(bind)


def downgrade() -> None:
    """Downgrade schema by dropping all tables."""
    bind = op.get_bind()
    Base.metadata.drop_all(bind)
