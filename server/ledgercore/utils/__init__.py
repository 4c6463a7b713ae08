from .money import BALANCE_TOLERANCE, LOCAL_CURRENCY, ZERO, is_balanced, quantize_money

__all__ = ["BALANCE_TOLERANCE", "LOCAL_CURRENCY", "ZERO", "is_balanced", "quantize_money"]
