"""Add indexes for bidding hot paths

Revision ID: add_bidding_indexes
Revises: create_marketplace_schema
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "add_bidding_indexes"
down_revision: Union[str, None] = "create_marketplace_schema"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Add indexes for the queries run on every bid and every sweep"""

    # Leading pending bid of an auction
    # Used in: WHERE auction_id = X AND status = 'pending' ORDER BY amount DESC
    # Frequency: every submission, rejection and expiry
    op.create_index(
        "ix_bids_auction_status_amount",
        "bids",
        ["auction_id", "status", "amount"],
        unique=False,
    )

    # Expiry sweep
    # Used in: WHERE status = 'active' AND end_time <= now
    # Frequency: every AUCTION_SWEEP_INTERVAL_SECONDS
    op.create_index(
        "ix_auctions_status_end_time",
        "auctions",
        ["status", "end_time"],
        unique=False,
    )

    # At most one highest pending bid per auction
    op.create_index(
        "uq_bids_auction_highest_pending",
        "bids",
        ["auction_id"],
        unique=True,
        postgresql_where="is_highest_bid AND status = 'pending'",
    )


def downgrade() -> None:
    """Remove bidding indexes"""
    op.drop_index("uq_bids_auction_highest_pending", table_name="bids")
    op.drop_index("ix_auctions_status_end_time", table_name="auctions")
    op.drop_index("ix_bids_auction_status_amount", table_name="bids")
