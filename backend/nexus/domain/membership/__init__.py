"""Membership ledger and counter reconciliation."""
