# SPDX-License-Identifier: AGPL-3.0-or-later
"""Application database models."""

from __future__ import annotations

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


class Product(Base):
    __tablename__ = "products"
    __table_args__ = (
        UniqueConstraint("code", name="uq_products_code"),
        CheckConstraint("pack_size >= 1", name="ck_products_pack_size"),
    )

    id = Column(Integer, primary_key=True)
    code = Column(String, nullable=False)
    description = Column(String, nullable=True)
    batch_prefix = Column(String, nullable=True)  # falls back to code
    pack_size = Column(Integer, nullable=False, default=1)  # bottles per kit
    price_per_kit_cents = Column(Integer, nullable=False, default=0)
    price_per_piece_cents = Column(Integer, nullable=False, default=0)
    use_tier_pricing = Column(Boolean, nullable=False, default=False)
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, server_default=func.now())

    tiers = relationship(
        "PricingTier",
        back_populates="product",
        cascade="all, delete-orphan",
        order_by="PricingTier.min_quantity",
    )


class PricingTier(Base):
    __tablename__ = "pricing_tiers"
    __table_args__ = (
        CheckConstraint("min_quantity >= 1", name="ck_pricing_tiers_min"),
        CheckConstraint(
            "max_quantity IS NULL OR max_quantity >= min_quantity", name="ck_pricing_tiers_range"
        ),
    )

    id = Column(Integer, primary_key=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False, index=True)
    min_quantity = Column(Integer, nullable=False)
    max_quantity = Column(Integer, nullable=True)  # NULL = unbounded
    price_per_kit_cents = Column(Integer, nullable=False)

    product = relationship("Product", back_populates="tiers")


class SalesOrder(Base):
    __tablename__ = "sales_orders"
    __table_args__ = (
        UniqueConstraint("number", name="uq_sales_orders_number"),
        CheckConstraint(
            "deposit_amount_cents <= subtotal_cents OR NOT deposit_required",
            name="ck_sales_orders_deposit",
        ),
        {"sqlite_autoincrement": True},
    )

    id = Column(Integer, primary_key=True)
    number = Column(String, nullable=False)
    status = Column(String, nullable=False, default="draft", index=True)
    pre_hold_status = Column(String, nullable=True)
    hold_reason = Column(Text, nullable=True)
    subtotal_cents = Column(Integer, nullable=False, default=0)
    deposit_required = Column(Boolean, nullable=False, default=False)
    deposit_percent = Column(Integer, nullable=False, default=0)
    deposit_amount_cents = Column(Integer, nullable=False, default=0)
    deposit_status = Column(String, nullable=False, default="unpaid")
    label_required = Column(Boolean, nullable=False, default=False)
    parent_order_id = Column(Integer, ForeignKey("sales_orders.id"), nullable=True, index=True)
    is_internal = Column(Boolean, nullable=False, default=False)
    source_channel = Column(String, nullable=False, default="staff")
    customer_ref = Column(String, nullable=True)
    notes = Column(Text, nullable=True)
    version = Column(Integer, nullable=False)
    created_at = Column(DateTime, nullable=False, server_default=func.now())
    updated_at = Column(DateTime, nullable=True)

    __mapper_args__ = {"version_id_col": version}

    lines = relationship(
        "OrderLine",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderLine.id",
    )
    batches = relationship("ProductionBatch", back_populates="order", order_by="ProductionBatch.id")
    parent = relationship("SalesOrder", remote_side=[id], uselist=False)


class OrderLine(Base):
    __tablename__ = "order_lines"
    __table_args__ = (
        CheckConstraint("sell_mode in ('kit','piece')", name="ck_order_lines_sell_mode"),
        CheckConstraint("qty_entered >= 1", name="ck_order_lines_qty"),
        {"sqlite_autoincrement": True},
    )

    id = Column(Integer, primary_key=True)
    order_id = Column(Integer, ForeignKey("sales_orders.id"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)
    sell_mode = Column(String, nullable=False, default="kit")
    qty_entered = Column(Integer, nullable=False)
    unit_price_cents = Column(Integer, nullable=False)
    bottle_qty = Column(Integer, nullable=False)
    line_subtotal_cents = Column(Integer, nullable=False)

    order = relationship("SalesOrder", back_populates="lines")
    product = relationship("Product")


class OrderAddOn(Base):
    __tablename__ = "order_addons"
    __table_args__ = (
        UniqueConstraint("addon_order_id", name="uq_order_addons_addon"),
        CheckConstraint(
            "status in ('pending','approved','rejected')", name="ck_order_addons_status"
        ),
    )

    id = Column(Integer, primary_key=True)
    parent_order_id = Column(Integer, ForeignKey("sales_orders.id"), nullable=False, index=True)
    addon_order_id = Column(Integer, ForeignKey("sales_orders.id"), nullable=False)
    status = Column(String, nullable=False, default="pending")
    reason = Column(Text, nullable=True)
    created_by = Column(String, nullable=True)
    approved_by = Column(String, nullable=True)
    approved_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, server_default=func.now())

    parent_order = relationship("SalesOrder", foreign_keys=[parent_order_id])
    addon_order = relationship("SalesOrder", foreign_keys=[addon_order_id])


class ProductionBatch(Base):
    __tablename__ = "production_batches"
    __table_args__ = (
        UniqueConstraint("number", name="uq_production_batches_number"),
        CheckConstraint("qty_planned >= 1", name="ck_production_batches_planned"),
        CheckConstraint(
            "qty_good + qty_scrap <= qty_planned", name="ck_production_batches_output"
        ),
        {"sqlite_autoincrement": True},
    )

    id = Column(Integer, primary_key=True)
    number = Column(String, nullable=False)
    order_id = Column(Integer, ForeignKey("sales_orders.id"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)
    status = Column(String, nullable=False, default="queued", index=True)
    qty_planned = Column(Integer, nullable=False)
    qty_good = Column(Integer, nullable=False, default=0)
    qty_scrap = Column(Integer, nullable=False, default=0)
    priority = Column(Integer, nullable=False, default=0)
    planned_start = Column(DateTime, nullable=True)
    planned_finish = Column(DateTime, nullable=True)
    actual_start = Column(DateTime, nullable=True)
    actual_finish = Column(DateTime, nullable=True)
    version = Column(Integer, nullable=False)
    created_at = Column(DateTime, nullable=False, server_default=func.now())

    __mapper_args__ = {"version_id_col": version}

    order = relationship("SalesOrder", back_populates="batches")
    product = relationship("Product")
    allocations = relationship(
        "BatchAllocation",
        back_populates="batch",
        cascade="all, delete-orphan",
        order_by="BatchAllocation.id",
    )
    steps = relationship(
        "WorkflowStep",
        back_populates="batch",
        cascade="all, delete-orphan",
        order_by="WorkflowStep.seq",
    )


class BatchAllocation(Base):
    __tablename__ = "batch_allocations"
    __table_args__ = (CheckConstraint("qty >= 1", name="ck_batch_allocations_qty"), {"sqlite_autoincrement": True})

    id = Column(Integer, primary_key=True)
    batch_id = Column(Integer, ForeignKey("production_batches.id"), nullable=False, index=True)
    order_line_id = Column(Integer, ForeignKey("order_lines.id"), nullable=False, index=True)
    qty = Column(Integer, nullable=False)

    batch = relationship("ProductionBatch", back_populates="allocations")
    order_line = relationship("OrderLine")


class WorkflowStep(Base):
    __tablename__ = "workflow_steps"
    __table_args__ = (
        UniqueConstraint("batch_id", "kind", name="uq_workflow_steps_batch_kind"),
        CheckConstraint(
            "kind in ('produce','bottle_cap','label','pack')", name="ck_workflow_steps_kind"
        ),
        CheckConstraint("status in ('pending','wip','done')", name="ck_workflow_steps_status"),
        {"sqlite_autoincrement": True},
    )

    id = Column(Integer, primary_key=True)
    batch_id = Column(Integer, ForeignKey("production_batches.id"), nullable=False, index=True)
    kind = Column(String, nullable=False)
    seq = Column(Integer, nullable=False)
    status = Column(String, nullable=False, default="pending")
    operator = Column(String, nullable=True)
    started_at = Column(DateTime, nullable=True)
    finished_at = Column(DateTime, nullable=True)
    out_of_order = Column(Boolean, nullable=False, default=False)

    batch = relationship("ProductionBatch", back_populates="steps")


class BatchSequence(Base):
    __tablename__ = "batch_sequences"
    __table_args__ = (UniqueConstraint("prefix", "scope", name="uq_batch_sequences_prefix_scope"),)

    id = Column(Integer, primary_key=True)
    prefix = Column(String, nullable=False)
    scope = Column(String, nullable=False, default="")
    last_value = Column(Integer, nullable=False, default=0)


class AuditLog(Base):
    """Append-only. Rows are inserted in the same transaction as the change they describe."""

    __tablename__ = "audit_log"

    id = Column(Integer, primary_key=True)
    entity = Column(String, nullable=False)
    entity_id = Column(Integer, nullable=True, index=True)
    action = Column(String, nullable=False)
    before = Column(Text, nullable=True)  # JSON string
    after = Column(Text, nullable=True)  # JSON string
    actor = Column(String, nullable=True)
    created_at = Column(DateTime, nullable=False, server_default=func.now())


__all__ = [
    "AuditLog",
    "Base",
    "BatchAllocation",
    "BatchSequence",
    "OrderAddOn",
    "OrderLine",
    "PricingTier",
    "Product",
    "ProductionBatch",
    "SalesOrder",
    "WorkflowStep",
]
