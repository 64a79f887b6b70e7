from decimal import Decimal, ROUND_HALF_UP, ROUND_FLOOR

def to_dec(x) -> Decimal:
    if isinstance(x, Decimal):
        return x
    # use string to avoid float binary artifacts
    return Decimal(str(x if x is not None else 0))

def q2(x) -> Decimal:
    return to_dec(x).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)

def q3(x) -> Decimal:
    return to_dec(x).quantize(Decimal("0.001"), rounding=ROUND_HALF_UP)

def floor_div(a, b) -> int:
    return int((to_dec(a) / to_dec(b)).to_integral_value(rounding=ROUND_FLOOR))

def as_float(val) -> float | None:
    if val is None:
        return None
    return float(val)

def json_number(x):
    # line items live in a JSON column: keep whole quantities as ints
    d = to_dec(x)
    return int(d) if d == d.to_integral_value() else float(d)
