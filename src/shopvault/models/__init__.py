"""SQLAlchemy models for the ShopVault dataset."""

from .catalog import Customer, Product
from .invoice import (
    InvoiceInventory,
    InvoiceOrder,
    InvoiceOrderItem,
    InvoicePurchase,
    InvoicePurchaseItem,
)
from .order import Order, OrderItem
from .purchase import Purchase, PurchaseItem

# Remote dataset tables, parents before dependents. Restores insert in this
# order and clear in reverse.
REMOTE_TABLES: tuple[str, ...] = (
    "products",
    "customers",
    "orders",
    "order_items",
    "purchases",
    "purchase_items",
    "invoice_orders",
    "invoice_order_items",
    "invoice_purchases",
    "invoice_purchase_items",
    "invoice_inventory",
)

__all__ = [
    "Customer", "Product",
    "InvoiceInventory", "InvoiceOrder", "InvoiceOrderItem",
    "InvoicePurchase", "InvoicePurchaseItem",
    "Order", "OrderItem",
    "Purchase", "PurchaseItem",
    "REMOTE_TABLES",
]
