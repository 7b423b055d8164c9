"""Service layer: access control, cryptography, snapshots and restore."""
