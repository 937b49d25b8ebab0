"""Leave module — day calculator, overlap checker, balance ledger and request state machine."""
