"""Pure domain types for the voucher approval workflow (no I/O)."""
