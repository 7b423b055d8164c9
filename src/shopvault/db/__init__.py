"""Database package for ShopVault."""
