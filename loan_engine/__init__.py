"""
Loan Calculation Engine

Disbursal, repayment schedule, interest and tiered late-penalty figures
for single-currency (INR) consumer loans, with exact Decimal money and
version-checked write-back of derived values.
"""

__version__ = "1.0.0"
