"""Initial chain mirror schema (blocks, transactions, token_transfers, sync_state)

Revision ID: 20261019_01
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "20261019_01"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "blocks",
        sa.Column("number", sa.BigInteger(), autoincrement=False, nullable=False),
        sa.Column("hash", sa.String(length=66), nullable=False),
        sa.Column("parent_hash", sa.String(length=66), nullable=False),
        sa.Column("timestamp", sa.BigInteger(), nullable=False),
        sa.Column("gas_used", sa.String(), nullable=False),
        sa.Column("gas_limit", sa.String(), nullable=False),
        sa.Column("base_fee_per_gas", sa.String(), nullable=True),
        sa.Column("tx_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("miner", sa.String(length=42), nullable=False),
        sa.PrimaryKeyConstraint("number", name=op.f("blocks_pkey")),
    )
    op.create_index(op.f("ix_blocks_hash"), "blocks", ["hash"], unique=False)

    op.create_table(
        "transactions",
        sa.Column("hash", sa.String(length=66), nullable=False),
        sa.Column("block_number", sa.BigInteger(), nullable=False),
        sa.Column("from_address", sa.String(length=42), nullable=False),
        sa.Column("to_address", sa.String(length=42), nullable=True),
        sa.Column("value", sa.String(), nullable=False),
        sa.Column("gas_used", sa.String(), nullable=False),
        sa.Column("gas_price", sa.String(), nullable=False),
        sa.Column("max_fee_per_gas", sa.String(), nullable=True),
        sa.Column("max_priority_fee_per_gas", sa.String(), nullable=True),
        sa.Column("status", sa.String(length=8), nullable=False),
        sa.Column("timestamp", sa.BigInteger(), nullable=False),
        sa.Column("input", sa.Text(), nullable=False, server_default="0x"),
        sa.ForeignKeyConstraint(
            ["block_number"],
            ["blocks.number"],
            name=op.f("transactions_block_number_fkey"),
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("hash", name=op.f("transactions_pkey")),
    )
    op.create_index(op.f("ix_transactions_block_number"), "transactions", ["block_number"], unique=False)
    op.create_index(op.f("ix_transactions_from_address"), "transactions", ["from_address"], unique=False)
    op.create_index(op.f("ix_transactions_to_address"), "transactions", ["to_address"], unique=False)

    op.create_table(
        "token_transfers",
        sa.Column("tx_hash", sa.String(length=66), nullable=False),
        sa.Column("log_index", sa.Integer(), autoincrement=False, nullable=False),
        sa.Column("block_number", sa.BigInteger(), nullable=False),
        sa.Column("token_address", sa.String(length=42), nullable=False),
        sa.Column("from_address", sa.String(length=42), nullable=False),
        sa.Column("to_address", sa.String(length=42), nullable=False),
        sa.Column("value", sa.String(), nullable=False),
        sa.Column("timestamp", sa.BigInteger(), nullable=False),
        sa.ForeignKeyConstraint(
            ["block_number"],
            ["blocks.number"],
            name=op.f("token_transfers_block_number_fkey"),
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("tx_hash", "log_index", name=op.f("token_transfers_pkey")),
    )
    for column in ("block_number", "token_address", "from_address", "to_address"):
        op.create_index(op.f(f"ix_token_transfers_{column}"), "token_transfers", [column], unique=False)

    op.create_table(
        "sync_state",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("last_block", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("last_block_hash", sa.String(length=66), nullable=False, server_default=""),
        sa.Column("updated_at", sa.DateTime(), nullable=True, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id", name=op.f("sync_state_pkey")),
    )


def downgrade() -> None:
    op.drop_table("sync_state")
    for column in ("to_address", "from_address", "token_address", "block_number"):
        op.drop_index(op.f(f"ix_token_transfers_{column}"), table_name="token_transfers")
    op.drop_table("token_transfers")
    op.drop_index(op.f("ix_transactions_to_address"), table_name="transactions")
    op.drop_index(op.f("ix_transactions_from_address"), table_name="transactions")
    op.drop_index(op.f("ix_transactions_block_number"), table_name="transactions")
    op.drop_table("transactions")
    op.drop_index(op.f("ix_blocks_hash"), table_name="blocks")
    op.drop_table("blocks")
