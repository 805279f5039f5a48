"""Settlement reconciliation formula.

This is the only place the deposit/carry-over formula lives. The live period
view, the close operation and every report read their numbers from here.

    net = accumulated_work - salary - prior_balance - manual_advances_applied
    net >= 0  -> deposited = floor(net / unit) * unit, generated_balance = 0
    net <  0  -> deposited = 0, generated_balance = -net

When net is positive but not a multiple of the rounding unit, the remainder
is dropped and not carried anywhere. Advances granted in the same period are
extra money paid out, not a deduction, so they do not enter the formula.
"""

from __future__ import annotations

from decimal import ROUND_FLOOR, Decimal

from settlement_engine.calculators.types import ZERO, ReconciliationResult

DEFAULT_ROUNDING_UNIT = Decimal("50")


def reconcile(
    accumulated_work: Decimal,
    salary: Decimal,
    prior_balance: Decimal,
    manual_advances_applied: Decimal,
    rounding_unit: Decimal = DEFAULT_ROUNDING_UNIT,
) -> ReconciliationResult:
    """Turn a worker's period totals into the deposit and new carry-over balance."""
    if rounding_unit <= 0:
        raise ValueError("Rounding unit must be positive")

    net = (
        Decimal(accumulated_work)
        - Decimal(salary)
        - Decimal(prior_balance)
        - Decimal(manual_advances_applied)
    )

    if net >= 0:
        units = (net / rounding_unit).to_integral_value(rounding=ROUND_FLOOR)
        return ReconciliationResult(
            net=net,
            deposited=units * rounding_unit,
            generated_balance=ZERO,
        )

    return ReconciliationResult(net=net, deposited=ZERO, generated_balance=-net)
