"""Create subscriptions, credits_wallet and credit_transactions

Revision ID: 0003
Revises: 0002_voice_transcripts
Create Date: 2026-10-06

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '0003_billing'
down_revision: Union[str, None] = '0002_voice_transcripts'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Local mirror of Stripe subscriptions plus the credits wallet."""

    op.create_table(
        'subscriptions',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('subscription_id', sa.String(255), nullable=False, unique=True, index=True),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), nullable=False, index=True),
        sa.Column('stripe_customer_id', sa.String(255), index=True),

        # Subscription details
        sa.Column('plan_type', sa.String(32)),
        sa.Column('subscription_role', sa.String(32)),
        sa.Column('credits_subscription_item_id', sa.String(255)),
        sa.Column('status', sa.String(32), server_default='incomplete', nullable=False),

        # Timestamps
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    # Create index for billable-subscription lookups
    op.create_index(
        'ix_subscriptions_user_status',
        'subscriptions',
        ['user_id', 'status'],
    )

    op.create_table(
        'credits_wallet',
        sa.Column('manager_id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('total_credits', sa.Integer, server_default='0', nullable=False),
        sa.Column('used_credits', sa.Integer, server_default='0', nullable=False),
        sa.Column('used_credits_this_month', sa.Integer, server_default='0', nullable=False),
        sa.Column('billing_cycle_anchor', sa.DateTime(timezone=True)),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    op.create_table(
        'credit_transactions',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('manager_id', postgresql.UUID(as_uuid=True), nullable=False, index=True),
        sa.Column('sales_rep_id', postgresql.UUID(as_uuid=True), index=True),
        sa.Column('amount', sa.Integer, nullable=False),
        sa.Column('reason', sa.String(255), nullable=False),
        sa.Column('usage_event_id', sa.String(255), unique=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    # Enable RLS
    op.execute('ALTER TABLE subscriptions ENABLE ROW LEVEL SECURITY')
    op.execute('ALTER TABLE credits_wallet ENABLE ROW LEVEL SECURITY')
    op.execute('ALTER TABLE credit_transactions ENABLE ROW LEVEL SECURITY')

    # RLS Policy: Users can only see their own subscriptions
    op.execute("""
        CREATE POLICY "Users can view own subscription"
        ON subscriptions FOR SELECT
        TO authenticated
        USING (user_id = auth.uid())
    """)

    # RLS Policy: Managers can see their wallet and ledger
    op.execute("""
        CREATE POLICY "Managers can view own wallet"
        ON credits_wallet FOR SELECT
        TO authenticated
        USING (manager_id = auth.uid())
    """)
    op.execute("""
        CREATE POLICY "Managers can view own credit transactions"
        ON credit_transactions FOR SELECT
        TO authenticated
        USING (manager_id = auth.uid() OR sales_rep_id = auth.uid())
    """)

    # RLS Policy: Service role manages billing tables (for webhooks)
    for table in ('subscriptions', 'credits_wallet', 'credit_transactions'):
        op.execute(f"""
            CREATE POLICY "Service role manages {table}"
            ON {table} FOR ALL
            TO service_role
            USING (true)
            WITH CHECK (true)
        """)


def downgrade() -> None:
    """Drop billing tables."""

    # Drop policies
    op.execute('DROP POLICY IF EXISTS "Users can view own subscription" ON subscriptions')
    op.execute('DROP POLICY IF EXISTS "Managers can view own wallet" ON credits_wallet')
    op.execute('DROP POLICY IF EXISTS "Managers can view own credit transactions" ON credit_transactions')
    for table in ('subscriptions', 'credits_wallet', 'credit_transactions'):
        op.execute(f'DROP POLICY IF EXISTS "Service role manages {table}" ON {table}')

    # Drop tables
    op.drop_table('credit_transactions')
    op.drop_table('credits_wallet')
    op.drop_index('ix_subscriptions_user_status', table_name='subscriptions')
    op.drop_table('subscriptions')
