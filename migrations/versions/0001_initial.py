"""initial stock ledger schema

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-18 00:00:00.000000
"""

from alembic import op
import sqlalchemy as sa


revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None


class GUID(sa.TypeDecorator):
    impl = sa.CHAR
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "postgresql":
            from sqlalchemy.dialects.postgresql import UUID

            return dialect.type_descriptor(UUID(as_uuid=True))
        return dialect.type_descriptor(sa.CHAR(36))


def upgrade() -> None:
    op.create_table(
        "batches",
        sa.Column("id", GUID(), primary_key=True),
        sa.Column("batch_code", sa.String(length=100), nullable=False),
        sa.Column("product_id", sa.String(length=100), nullable=False),
        sa.Column("manufacturing_date", sa.Date(), nullable=True),
        sa.Column("expiry_date", sa.Date(), nullable=True),
        sa.Column("quantity", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="active"),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint("quantity >= 0", name="ck_batches_quantity_non_negative"),
        sa.CheckConstraint("status IN ('active', 'expired', 'disposed')", name="ck_batches_status"),
    )
    op.create_index("ix_batches_batch_code", "batches", ["batch_code"], unique=True)
    op.create_index("ix_batches_product_id", "batches", ["product_id"])
    op.create_index("ix_batches_expiry_date", "batches", ["expiry_date"])

    op.create_table(
        "locations",
        sa.Column("id", GUID(), primary_key=True),
        sa.Column("location_code", sa.String(length=50), nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False, unique=True),
        sa.Column("max_capacity", sa.Integer(), nullable=False, server_default="100"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint("max_capacity >= 1", name="ck_locations_capacity_positive"),
    )
    op.create_index("ix_locations_location_code", "locations", ["location_code"], unique=True)

    op.create_table(
        "stock_records",
        sa.Column("id", GUID(), primary_key=True),
        sa.Column("batch_id", GUID(), sa.ForeignKey("batches.id"), nullable=False, unique=True),
        sa.Column("quantity_on_hand", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("quantity_on_shelf", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("quantity_reserved", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("location_id", GUID(), sa.ForeignKey("locations.id"), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint("quantity_on_hand >= 0", name="ck_stock_records_on_hand_non_negative"),
        sa.CheckConstraint("quantity_on_shelf >= 0", name="ck_stock_records_on_shelf_non_negative"),
        sa.CheckConstraint("quantity_reserved >= 0", name="ck_stock_records_reserved_non_negative"),
        sa.CheckConstraint(
            "quantity_reserved <= quantity_on_hand + quantity_on_shelf",
            name="ck_stock_records_reserved_within_total",
        ),
        sa.UniqueConstraint("location_id", name="uq_stock_records_location_id"),
    )

    op.create_table(
        "movements",
        sa.Column("id", GUID(), primary_key=True),
        sa.Column("movement_number", sa.String(length=50), nullable=False),
        sa.Column("stock_record_id", GUID(), nullable=False),
        sa.Column("batch_id", GUID(), nullable=False),
        sa.Column("product_id", sa.String(length=100), nullable=False),
        sa.Column("movement_type", sa.String(length=20), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("stock_side", sa.String(length=20), nullable=True),
        sa.Column("from_location_id", GUID(), nullable=True),
        sa.Column("to_location_id", GUID(), nullable=True),
        sa.Column("reason", sa.String(length=255), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("movement_date", sa.DateTime(), nullable=False),
        sa.Column("performed_by", sa.String(length=100), nullable=True),
        sa.Column("purchase_order_id", sa.String(length=100), nullable=True),
        sa.Column("on_hand_after", sa.Integer(), nullable=False),
        sa.Column("on_shelf_after", sa.Integer(), nullable=False),
        sa.Column("reverses_movement_id", GUID(), nullable=True, unique=True),
        sa.Column("reversed_by_movement_id", GUID(), nullable=True),
        sa.Column("reversed_at", sa.DateTime(), nullable=True),
        sa.Column("trace_id", sa.String(length=128), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint(
            "movement_type IN ('in', 'out', 'adjustment', 'transfer', 'audit', 'location')",
            name="ck_movements_type",
        ),
        sa.CheckConstraint("movement_type = 'location' OR quantity <> 0", name="ck_movements_quantity_non_zero"),
    )
    op.create_index("ix_movements_movement_number", "movements", ["movement_number"], unique=True)
    op.create_index("ix_movements_stock_record_id", "movements", ["stock_record_id"])
    op.create_index("ix_movements_batch_id", "movements", ["batch_id"])
    op.create_index("ix_movements_product_id", "movements", ["product_id"])
    op.create_index("ix_movements_movement_type", "movements", ["movement_type"])
    op.create_index("ix_movements_movement_date", "movements", ["movement_date"])
    op.create_index("ix_movements_performed_by", "movements", ["performed_by"])
    op.create_index("ix_movements_purchase_order_id", "movements", ["purchase_order_id"])
    op.create_index("ix_movements_date_created", "movements", ["movement_date", "created_at"])
    op.create_index("ix_movements_record_created", "movements", ["stock_record_id", "created_at"])

    op.create_table(
        "sequence_counters",
        sa.Column("id", GUID(), primary_key=True),
        sa.Column("name", sa.String(length=100), nullable=False, unique=True),
        sa.Column("current_value", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )

    op.create_table(
        "idempotency_records",
        sa.Column("id", GUID(), primary_key=True),
        sa.Column("endpoint", sa.String(length=255), nullable=False),
        sa.Column("method", sa.String(length=10), nullable=False),
        sa.Column("idempotency_key", sa.String(length=255), nullable=False),
        sa.Column("request_hash", sa.String(length=64), nullable=False),
        sa.Column("state", sa.String(length=20), nullable=False),
        sa.Column("status_code", sa.Integer(), nullable=True),
        sa.Column("response_body", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("endpoint", "method", "idempotency_key", name="uq_idempotency"),
    )

    op.create_table(
        "audit_events",
        sa.Column("id", GUID(), primary_key=True),
        sa.Column("actor", sa.String(length=100), nullable=False),
        sa.Column("trace_id", sa.String(length=128), nullable=True),
        sa.Column("action", sa.String(length=100), nullable=False),
        sa.Column("entity_type", sa.String(length=50), nullable=False),
        sa.Column("entity_id", sa.String(length=64), nullable=True),
        sa.Column("before_payload", sa.JSON(), nullable=True),
        sa.Column("after_payload", sa.JSON(), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=True),
        sa.Column("result", sa.String(length=20), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_audit_events_action", "audit_events", ["action"])
    op.create_index("ix_audit_events_entity_id", "audit_events", ["entity_id"])


def downgrade() -> None:
    op.drop_index("ix_audit_events_entity_id", table_name="audit_events")
    op.drop_index("ix_audit_events_action", table_name="audit_events")
    op.drop_table("audit_events")
    op.drop_table("idempotency_records")
    op.drop_table("sequence_counters")
    for name in (
        "ix_movements_record_created",
        "ix_movements_date_created",
        "ix_movements_purchase_order_id",
        "ix_movements_performed_by",
        "ix_movements_movement_date",
        "ix_movements_movement_type",
        "ix_movements_product_id",
        "ix_movements_batch_id",
        "ix_movements_stock_record_id",
        "ix_movements_movement_number",
    ):
        op.drop_index(name, table_name="movements")
    op.drop_table("movements")
    op.drop_table("stock_records")
    op.drop_index("ix_locations_location_code", table_name="locations")
    op.drop_table("locations")
    op.drop_index("ix_batches_expiry_date", table_name="batches")
    op.drop_index("ix_batches_product_id", table_name="batches")
    op.drop_index("ix_batches_batch_code", table_name="batches")
    op.drop_table("batches")
