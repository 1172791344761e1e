"""Domain services: the stock ledger engines and document numbering."""
