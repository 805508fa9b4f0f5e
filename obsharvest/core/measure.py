"""

.. currentmodule:: obsharvest.core.measure

:platform: Unix, Mac
:synopsis: Text encoding of observation results

A result is written one block per sample row. Within a block the values are
separated by :attr:`MeasureEncoding.TOKEN_SEPARATOR` in field order and each
block ends with :attr:`MeasureEncoding.BLOCK_SEPARATOR`::

    2021-03-01T10:00:00,12.5,35.1@@2021-03-01T11:00:00,12.7,35.0@@

.. contents:: Contents
    :local:
    :backlinks: top

"""
import datetime
from typing import List, Optional

from obsharvest.core import monitor
from obsharvest.core.types import MeasureEncoding

logger = monitor.get_logger(__name__)


class MeasureBlockBuilder:
    """
    Builds a result payload incrementally.

    >>> msb = MeasureBlockBuilder()
    >>> msb.append_date(datetime.datetime(2021, 3, 1, 10))
    >>> msb.append_cell("12.5")
    >>> msb.close_block()
    >>> msb.build()
    '2021-03-01T10:00:00,12.5@@'
    """

    def __init__(self):
        self._blocks: List[str] = []
        self._tokens: List[str] = []
        self.warnings: List[str] = []

    @property
    def block_count(self) -> int:
        """Number of closed blocks"""
        return len(self._blocks)

    @property
    def warning_count(self) -> int:
        """Number of cells replaced by 0.0"""
        return len(self.warnings)

    def append_value(self, value: float):
        self._tokens.append(repr(float(value)))

    def append_date(self, instant: datetime.datetime):
        self._tokens.append(instant.isoformat())

    def append_cell(self, raw: str, line: Optional[int] = None, column: Optional[str] = None) -> bool:
        """
        Parse a raw cell and append it. A cell that is not a number is
        written as 0.0 and counted as a warning; the block goes on.

        :param raw: the raw cell text
        :param line: the line number of the cell, for the warning
        :param column: the column header of the cell, for the warning
        :return: True if the cell was parsed
        """
        try:
            self.append_value(float(raw))
            return True
        except (TypeError, ValueError):
            message = f"Problem parsing double value at line {line} and column {column} (value='{raw}')"
            logger.warning(message)
            self.warnings.append(message)
            self.append_value(0.0)
            return False

    def close_block(self):
        """Terminate the block of the current sample row"""
        self._blocks.append(MeasureEncoding.TOKEN_SEPARATOR.join(self._tokens))
        self._tokens = []

    def build(self) -> str:
        """The payload of the closed blocks"""
        return "".join(block + MeasureEncoding.BLOCK_SEPARATOR for block in self._blocks)

    def __str__(self):
        return self.build()


def parse_blocks(payload: str) -> List[List[str]]:
    """
    Split a payload back into its blocks of tokens

    >>> parse_blocks('a,1.0@@b,2.0@@')
    [['a', '1.0'], ['b', '2.0']]
    """
    blocks = payload.split(MeasureEncoding.BLOCK_SEPARATOR)
    return [block.split(MeasureEncoding.TOKEN_SEPARATOR) for block in blocks if block]
