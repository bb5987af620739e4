"""
Module 'fees': calculateur de frais plateforme et formatage des montants.
"""

from .models import FeeTotals, LineWithFee
from .calculator import FeePolicy, PercentPlusFlatPolicy, default_policy, calculate_fees, format_currency

__all__ = [
    "FeeTotals",
    "LineWithFee",
    "FeePolicy",
    "PercentPlusFlatPolicy",
    "default_policy",
    "calculate_fees",
    "format_currency",
]
