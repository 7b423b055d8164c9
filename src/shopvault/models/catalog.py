"""SQLAlchemy models for the product catalogue and customer book."""

from sqlalchemy import Float, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column

from shopvault.db.session import Base


class Product(Base):
    """A stocked product."""

    __tablename__ = "products"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    unit: Mapped[str] = mapped_column(Text, nullable=False, default="kg")
    price: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    stock: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    created_at: Mapped[str | None] = mapped_column(Text, nullable=True)
    updated_at: Mapped[str | None] = mapped_column(Text, nullable=True)


class Customer(Base):
    """A customer or supplier.

    ``customer_type`` is one of ``bakery``, ``individual`` or ``supplier``.
    """

    __tablename__ = "customers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    phone: Mapped[str | None] = mapped_column(Text, nullable=True)
    address: Mapped[str | None] = mapped_column(Text, nullable=True)
    customer_type: Mapped[str] = mapped_column(Text, nullable=False, default="individual")
    created_at: Mapped[str | None] = mapped_column(Text, nullable=True)
