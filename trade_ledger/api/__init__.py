"""HTTP surface for the trade ledger."""
