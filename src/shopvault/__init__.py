"""ShopVault: backup integrity and access control for the store backend."""

__version__ = "1.0.0"
