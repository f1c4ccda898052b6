"""Leave module — requests, dual approval workflow, balance ledger."""
