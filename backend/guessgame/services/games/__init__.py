"""Game domain services: registry, lifecycle, confidential guesses, oracle and payout.

This package contains the escrow logic that HTTP routes and background
workers call into, keeping transport concerns separated from the state
machine. Every mutating operation runs through ``ledger.atomic``.
"""
