"""
Billing Engine - Source Package

Billing-cycle and projection engine for a household finance tracker.
Turns a snapshot of expenses, incomes and credit cards into monthly
statements, installment schedules and recurring-item projections.

DESIGN PRINCIPLES:
1. Snapshot in → derived views out
2. No state kept between calls
3. Recoverable gaps use documented defaults, never exceptions
4. Every mutation goes through the external store
5. Store layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Billing Engine Team"
