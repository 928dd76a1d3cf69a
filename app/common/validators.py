"""
Validadores y normalizadores compartidos (montos y códigos)
"""
import re
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Optional

from app.common.exceptions import ValidationError

CENTS = Decimal("0.01")


def to_money(value) -> Decimal:
    """
    Convierte un valor a Decimal con dos decimales.
    Nunca pasa por float: los strings y enteros se convierten directo.
    """
    if value is None:
        return Decimal("0.00")
    if isinstance(value, float):
        value = str(value)
    try:
        return Decimal(value).quantize(CENTS, rounding=ROUND_HALF_UP)
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError(f"Monto inválido: {value!r}")


def require_non_negative(value, field: str) -> Decimal:
    """Monto >= 0, o ValidationError con el campo que falló."""
    amount = to_money(value)
    if amount < 0:
        raise ValidationError(f"El campo '{field}' no puede ser negativo", field=field)
    return amount


def require_positive(value, field: str) -> Decimal:
    """Monto > 0, o ValidationError con el campo que falló."""
    amount = to_money(value)
    if amount <= 0:
        raise ValidationError(f"El campo '{field}' debe ser mayor a cero", field=field)
    return amount


def normalize_code(code: Optional[str]) -> Optional[str]:
    """
    Normaliza un código de caja/bodega: sin espacios y en mayúsculas.
    Retorna None si queda vacío.
    """
    if code is None:
        return None
    cleaned = re.sub(r'\s+', '', code).upper()
    return cleaned or None


def code_from_name(name: str, fallback: str, suffix: str) -> str:
    """
    Genera un código a partir del nombre: mayúsculas, solo alfanuméricos,
    máximo 6 caracteres, más un sufijo para evitar colisiones.
    """
    base = re.sub(r'[^A-Z0-9]', '', name.upper())[:6]
    return f"{base or fallback}-{suffix}"
