"""Create profiles, phone number mappings and user templates

Revision ID: 0001
Revises:
Create Date: 2026-10-05

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '0001_profiles_and_templates'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'profiles',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('role', sa.String(32), server_default='manager', nullable=False),
        sa.Column('manager_id', postgresql.UUID(as_uuid=True), index=True),
        sa.Column('full_name', sa.String(255)),
        sa.Column('email', sa.String(320)),
        sa.Column('company_name', sa.String(255)),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    op.create_table(
        'phone_number_mappings',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('phone_number', sa.String(20), nullable=False, unique=True, index=True),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), nullable=False, index=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    op.create_table(
        'user_templates',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), nullable=False, index=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('fields', sa.JSON, nullable=False, server_default='[]'),
        sa.Column('template_structure', sa.JSON),
        sa.Column('is_default', sa.Boolean, server_default='false', nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index(
        'ix_user_templates_user_default',
        'user_templates',
        ['user_id', 'is_default'],
    )

    # =========================================================================
    # RLS: profiles (own row, managers see their team)
    # =========================================================================
    op.execute("ALTER TABLE public.profiles ENABLE ROW LEVEL SECURITY")
    op.execute("""
        CREATE POLICY profiles_select_policy ON public.profiles
        FOR SELECT USING (id = auth.uid() OR manager_id = auth.uid())
    """)
    op.execute("""
        CREATE POLICY profiles_update_policy ON public.profiles
        FOR UPDATE USING (id = auth.uid()) WITH CHECK (id = auth.uid())
    """)

    # =========================================================================
    # RLS: phone_number_mappings and user_templates (user-owned)
    # =========================================================================
    for table in ('phone_number_mappings', 'user_templates'):
        op.execute(f"ALTER TABLE public.{table} ENABLE ROW LEVEL SECURITY")
        op.execute(f"""
            CREATE POLICY {table}_select_policy ON public.{table}
            FOR SELECT USING (user_id = auth.uid())
        """)
        op.execute(f"""
            CREATE POLICY {table}_insert_policy ON public.{table}
            FOR INSERT WITH CHECK (user_id = auth.uid())
        """)
        op.execute(f"""
            CREATE POLICY {table}_update_policy ON public.{table}
            FOR UPDATE USING (user_id = auth.uid()) WITH CHECK (user_id = auth.uid())
        """)
        op.execute(f"""
            CREATE POLICY {table}_delete_policy ON public.{table}
            FOR DELETE USING (user_id = auth.uid())
        """)


def downgrade() -> None:
    for table in ('phone_number_mappings', 'user_templates'):
        for action in ('select', 'insert', 'update', 'delete'):
            op.execute(f"DROP POLICY IF EXISTS {table}_{action}_policy ON public.{table}")
    op.execute("DROP POLICY IF EXISTS profiles_select_policy ON public.profiles")
    op.execute("DROP POLICY IF EXISTS profiles_update_policy ON public.profiles")

    op.drop_index('ix_user_templates_user_default', table_name='user_templates')
    op.drop_table('user_templates')
    op.drop_table('phone_number_mappings')
    op.drop_table('profiles')
