"""GST split for Indian supplies.

Intra-state supplies carry CGST + SGST at half the nominal rate each; inter-state
supplies carry IGST at the full rate. Imports (customs duty is handled elsewhere)
and non-GST supplies carry no GST at all.
"""
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum

from ledgercore.utils import ZERO, quantize_money

HUNDRED = Decimal("100")


class SupplyType(str, Enum):
    INTRA_STATE = "intra_state"
    INTER_STATE = "inter_state"
    IMPORT = "import"
    NONE = "none"


@dataclass(frozen=True)
class GstSplit:
    base_amount: Decimal
    cgst_rate: Decimal = ZERO
    cgst_amount: Decimal = ZERO
    sgst_rate: Decimal = ZERO
    sgst_amount: Decimal = ZERO
    igst_rate: Decimal = ZERO
    igst_amount: Decimal = ZERO

    @property
    def total_gst(self) -> Decimal:
        return self.cgst_amount + self.sgst_amount + self.igst_amount

    @property
    def gross_amount(self) -> Decimal:
        return self.base_amount + self.total_gst


def split_gst(
    amount: Decimal | int | str,
    rate: Decimal | int | str,
    supply_type: SupplyType | str,
    *,
    includes_tax: bool,
) -> GstSplit:
    """Split ``amount`` into base and GST components.

    ``includes_tax`` must be stated by the caller: when true, ``amount`` is the
    gross (tax-inclusive) figure and the base is derived as gross minus the
    computed tax, so ``base_amount + total_gst`` always equals the gross exactly.
    """
    supply = SupplyType(supply_type)
    amount = Decimal(str(amount))
    rate = Decimal(str(rate))
    if amount < 0:
        raise ValueError("Amount cannot be negative.")
    if rate < 0:
        raise ValueError("GST rate cannot be negative.")

    if supply in (SupplyType.IMPORT, SupplyType.NONE) or rate == 0:
        return GstSplit(base_amount=quantize_money(amount))

    taxable = amount * HUNDRED / (HUNDRED + rate) if includes_tax else amount

    if supply == SupplyType.INTRA_STATE:
        half_rate = rate / 2
        half_tax = quantize_money(taxable * half_rate / HUNDRED)
        split = dict(
            cgst_rate=half_rate,
            cgst_amount=half_tax,
            sgst_rate=half_rate,
            sgst_amount=half_tax,
        )
    else:
        split = dict(igst_rate=rate, igst_amount=quantize_money(taxable * rate / HUNDRED))

    total_tax = sum(value for key, value in split.items() if key.endswith("_amount"))
    base_amount = quantize_money(amount) - total_tax if includes_tax else quantize_money(amount)
    return GstSplit(base_amount=base_amount, **split)
