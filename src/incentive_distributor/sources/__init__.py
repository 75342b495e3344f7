"""Data sources - subgraph balances and incentive allocations."""
