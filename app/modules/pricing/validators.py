"""
Validadores de consistencia de cobros.

Solo detectan y describen el problema; escalar (evento de seguridad,
bloqueo) es responsabilidad del llamador.
"""
from decimal import Decimal
from typing import List, Optional

from app.core.config import settings
from app.common.money import Number, money_sum, round_2, to_decimal
from app.modules.pricing.schemas import (
    DiscountValidation, PricingResult, SplitPart, SplitValidationResult
)


SPLIT_TOLERANCE = Decimal("0.01")


def validate_discount_integrity(
    applied_discount: Number,
    expected: PricingResult,
    tolerance: Optional[Number] = None
) -> DiscountValidation:
    """Verificar que el descuento ya aplicado coincide con el que calcula el motor"""
    tolerance = to_decimal(tolerance if tolerance is not None else settings.DISCOUNT_TOLERANCE)
    applied = to_decimal(applied_discount)

    if abs(applied - expected.discount_amount) > tolerance:
        return DiscountValidation(
            valid=False,
            reason=f"Discount mismatch: Applied {applied} vs Expected {expected.discount_amount}"
        )

    return DiscountValidation(valid=True)


def validate_split_consistency(original_amount: Number, splits: List[SplitPart]) -> SplitValidationResult:
    """
    Validar que las partes de una cuenta dividida suman exactamente el original.

    No se puede perder ni crear dinero al dividir: diferencia < 1 centavo,
    sin partes negativas ni en cero.
    """
    original = to_decimal(original_amount)
    split_total = money_sum(split.amount for split in splits)
    difference = abs(original - split_total)
    violations = []

    within_tolerance = difference < SPLIT_TOLERANCE
    if not within_tolerance:
        violations.append(
            f"Total mismatch: Original {round_2(original)} vs Split {round_2(split_total)} "
            f"(difference {difference})"
        )

    negative = [str(s.part_number) for s in splits if s.amount < 0]
    if negative:
        violations.append(f"Negative amounts detected: Parts {', '.join(negative)}")

    zero = [str(s.part_number) for s in splits if s.amount == 0]
    if zero:
        violations.append(f"Zero amounts detected: Parts {', '.join(zero)}")

    return SplitValidationResult(
        valid=within_tolerance and not violations,
        original_total=original,
        split_total=split_total,
        difference=difference,
        tolerance=SPLIT_TOLERANCE,
        violations=violations
    )
