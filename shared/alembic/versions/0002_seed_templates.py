"""Seed the verification_code template for every channel.

Revision ID: 0002
Revises: 0001
Create Date: 2026-10-17
"""

from uuid import uuid4

import sqlalchemy as sa
from alembic import op

revision = "0002"
down_revision = "0001"
branch_labels = None
depends_on = None

templates_table = sa.table(
    "message_templates",
    sa.column("id", sa.Uuid),
    sa.column("name", sa.String),
    sa.column("channel", sa.String),
    sa.column("subject_template", sa.Text),
    sa.column("body_template", sa.Text),
    sa.column("is_active", sa.Boolean),
)

TEMPLATES = [
    {
        "id": uuid4(),
        "name": "verification_code",
        "channel": "sms",
        "subject_template": None,
        "body_template": (
            "Your verification code is {{ code }}. "
            "It expires in {{ minutes }} minutes."
        ),
        "is_active": True,
    },
    {
        "id": uuid4(),
        "name": "verification_code",
        "channel": "whatsapp",
        "subject_template": None,
        "body_template": (
            "Your verification code is *{{ code }}*. "
            "It expires in {{ minutes }} minutes."
        ),
        "is_active": True,
    },
    {
        "id": uuid4(),
        "name": "verification_code",
        "channel": "email",
        "subject_template": "Your verification code",
        "body_template": (
            "Hi,\n\n"
            "Your verification code is {{ code }}.\n"
            "It expires in {{ minutes }} minutes.\n\n"
            "If you did not request this code you can ignore this email."
        ),
        "is_active": True,
    },
]


def upgrade() -> None:
    op.bulk_insert(templates_table, TEMPLATES)


def downgrade() -> None:
    op.execute(
        templates_table.delete().where(
            templates_table.c.name == "verification_code"
        )
    )
