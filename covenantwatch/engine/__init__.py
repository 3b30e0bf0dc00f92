"""
CovenantWatch Calculation Engine — pure, synchronous, stateless.

Components:
- ratios: Financial ratios and data-confidence scoring from a snapshot
- metrics: Covenant metric registry (field mapping + polarity)
- compliance: Operator/threshold evaluation with the warning buffer
- trend: Least-squares trend direction, confidence, days-to-breach
"""
