"""Rent ledger, index rent adjustment and loan remaining-balance engine."""
