"""

.. currentmodule:: obsharvest.core.units

:platform: Unix, Mac
:synopsis: Units of measure

Parsing and conversion of the units declared by files and services. Units are
given either in pint syntax (``degC``, ``m/s``) or as UCUM codes (``Cel``,
``[degF]``); UCUM codes are translated before parsing.

.. contents:: Contents
    :local:
    :backlinks: top

"""
from tokenize import TokenError
from typing import Optional

import pint

from obsharvest.core import monitor

logger = monitor.get_logger(__name__)

#: UCUM codes that pint does not read as is
UCUM_TO_PINT = {
    "Cel": "degC",
    "[degF]": "degF",
    "K": "kelvin",
    "[psi]": "psi",
    "[in_i]": "inch",
    "[ft_i]": "foot",
    "[mi_i]": "mile",
    "[kn_i]": "knot",
    "%": "percent",
    "1": "dimensionless",
    "deg": "degree",
    "mho": "siemens",
}

_UNIT_ERRORS = (pint.errors.PintError, AttributeError, ValueError, TypeError, TokenError, AssertionError)


class UnitHandler:
    """
    Parse and compare units with a pint registry

    >>> handler = UnitHandler()
    >>> handler.is_convertible("Cel", "degF")
    True
    >>> handler.is_parseable("bananas")
    False
    """

    def __init__(self, registry: Optional[pint.UnitRegistry] = None):
        self.registry = registry or get_unit_registry()

    @staticmethod
    def normalize(uom: str) -> str:
        """Translate a UCUM code into pint syntax"""
        uom = uom.strip()
        return UCUM_TO_PINT.get(uom, uom)

    def parse(self, uom: str):
        """
        Parse a unit

        :param uom: the unit text
        :return: the pint unit, or None if it does not parse
        """
        try:
            return self.registry.parse_units(self.normalize(uom))
        except _UNIT_ERRORS as e:
            logger.debug(f"Unit of measure '{uom}' does not parse: {e}")
            return None

    def is_parseable(self, uom: str) -> bool:
        return self.parse(uom) is not None

    def is_convertible(self, source: str, target: str) -> bool:
        """
        True if values in the source unit can be converted into the target unit

        :param source: the unit to convert from
        :param target: the unit to convert to
        """
        source_unit = self.parse(source)
        target_unit = self.parse(target)
        if source_unit is None or target_unit is None:
            return False
        return source_unit.dimensionality == target_unit.dimensionality

    def convert(self, value: float, source: str, target: str) -> float:
        """Convert a value. Raises ``pint.DimensionalityError`` for inconvertible units."""
        quantity = self.registry.Quantity(value, self.normalize(source))
        return quantity.to(self.normalize(target)).magnitude


_registry: Optional[pint.UnitRegistry] = None


def get_unit_registry() -> pint.UnitRegistry:
    """The shared pint registry"""
    global _registry
    if _registry is None:
        _registry = pint.UnitRegistry()
    return _registry
