"""Stock ledger service: product stock kept consistent with an append-only movement history."""
