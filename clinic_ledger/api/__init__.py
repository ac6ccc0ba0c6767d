"""HTTP interface for the clinic ledger."""
