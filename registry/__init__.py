"""Carbon credit registry core: credit ledger and validator consensus."""
