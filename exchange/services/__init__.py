"""
Core services of the exchange: ledger, purchase and swap coordination,
and reward redemption.
"""
