"""SQLAlchemy models for invoice bookkeeping.

Invoice tables keep their own product names rather than referencing
``products`` so that printed invoices survive catalogue edits.
"""

from sqlalchemy import Float, ForeignKey, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column

from shopvault.db.session import Base


class InvoiceOrder(Base):
    __tablename__ = "invoice_orders"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    customer_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("customers.id"),
        nullable=True,
    )
    invoice_number: Mapped[str | None] = mapped_column(Text, nullable=True)
    total: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    issued_at: Mapped[str | None] = mapped_column(Text, nullable=True)


class InvoiceOrderItem(Base):
    __tablename__ = "invoice_order_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    invoice_order_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("invoice_orders.id"),
        nullable=False,
    )
    product_name: Mapped[str] = mapped_column(Text, nullable=False)
    quantity: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    unit_price: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class InvoicePurchase(Base):
    __tablename__ = "invoice_purchases"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    supplier_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    invoice_number: Mapped[str | None] = mapped_column(Text, nullable=True)
    total: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    issued_at: Mapped[str | None] = mapped_column(Text, nullable=True)


class InvoicePurchaseItem(Base):
    __tablename__ = "invoice_purchase_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    invoice_purchase_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("invoice_purchases.id"),
        nullable=False,
    )
    product_name: Mapped[str] = mapped_column(Text, nullable=False)
    quantity: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    unit_price: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class InvoiceInventory(Base):
    """Stock position as declared for invoicing purposes."""

    __tablename__ = "invoice_inventory"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    product_name: Mapped[str] = mapped_column(Text, nullable=False)
    unit: Mapped[str | None] = mapped_column(Text, nullable=True)
    quantity: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    updated_at: Mapped[str | None] = mapped_column(Text, nullable=True)
