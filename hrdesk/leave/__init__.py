"""Leave module — balances, requests and the leave ledger rules."""
