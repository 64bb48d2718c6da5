"""Core HR module — employee identity consumed by the leave ledger."""
