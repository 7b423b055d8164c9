"""HTTP API for ShopVault."""
