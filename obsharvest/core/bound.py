"""

.. currentmodule:: obsharvest.core.bound

:platform: Unix, Mac
:synopsis: Spatial and temporal bound accumulator

.. contents:: Contents
    :local:
    :backlinks: top

"""
import datetime
from typing import Iterable, Optional, Tuple

from obsharvest.core.models import SamplingFeature, TemporalExtent


def _min(current, value):
    return value if current is None or value < current else current


def _max(current, value):
    return value if current is None or value > current else current


class SpatioTemporalBound:
    """
    Mutable accumulator of a time interval and a geographic bounding box.
    After any sequence of calls it is the tightest interval and box
    containing every date and position added.

    >>> b = SpatioTemporalBound()
    >>> b.add_position(2.5, 43.0)
    >>> b.add_position(1.0, 44.0)
    >>> b.min_lon, b.max_lon, b.min_lat, b.max_lat
    (1.0, 2.5, 43.0, 44.0)
    """

    _EXTENT_FIELDS = ("min_time", "max_time", "min_lon", "max_lon", "min_lat", "max_lat")

    def __init__(self):
        self.min_time: Optional[datetime.datetime] = None
        self.max_time: Optional[datetime.datetime] = None
        self.min_lon: Optional[float] = None
        self.max_lon: Optional[float] = None
        self.min_lat: Optional[float] = None
        self.max_lat: Optional[float] = None
        self.geometry: Optional[SamplingFeature] = None

    def add_date(self, instant: Optional[datetime.datetime]):
        """Widen the time interval to the instant. ``None`` is ignored."""
        if instant is None:
            return
        self.min_time = _min(self.min_time, instant)
        self.max_time = _max(self.max_time, instant)

    def add_position(self, lon: Optional[float], lat: Optional[float]):
        """Widen the box to the position. Ignored unless both coordinates are given."""
        if lon is None or lat is None:
            return
        self.min_lon = _min(self.min_lon, lon)
        self.max_lon = _max(self.max_lon, lon)
        self.min_lat = _min(self.min_lat, lat)
        self.max_lat = _max(self.max_lat, lat)

    def add_positions(self, positions: Iterable[Tuple[float, float]]):
        for lon, lat in positions:
            self.add_position(lon, lat)

    def add_geometry(self, feature: SamplingFeature):
        """Attach a sampling feature and widen the box to all its positions"""
        self.geometry = feature
        self.add_positions(feature.positions)

    def merge(self, other: Optional["SpatioTemporalBound"]):
        """
        Merge another bound into this one. Merging an empty bound is a no-op.

        :param other: the bound to merge
        """
        if other is None or other.is_empty():
            return
        self.add_date(other.min_time)
        self.add_date(other.max_time)
        self.add_position(other.min_lon, other.min_lat)
        self.add_position(other.max_lon, other.max_lat)

    def to_temporal_extent(self) -> Optional[TemporalExtent]:
        """The time interval, ``None`` when no date was added"""
        if self.min_time is None:
            return None
        return TemporalExtent(begin=self.min_time, end=self.max_time)

    def has_time(self) -> bool:
        return self.min_time is not None

    def has_position(self) -> bool:
        return self.min_lon is not None

    def is_empty(self) -> bool:
        return not self.has_time() and not self.has_position()

    def copy(self) -> "SpatioTemporalBound":
        bound = SpatioTemporalBound()
        bound.merge(self)
        bound.geometry = self.geometry
        return bound

    def to_dict(self) -> dict:
        extent = {name: getattr(self, name) for name in self._EXTENT_FIELDS}
        for name in ("min_time", "max_time"):
            if extent[name] is not None:
                extent[name] = extent[name].isoformat()
        return extent

    def __eq__(self, other):
        if not isinstance(other, SpatioTemporalBound):
            return NotImplemented
        return all(getattr(self, name) == getattr(other, name) for name in self._EXTENT_FIELDS)

    def __repr__(self):
        return '<SpatioTemporalBound time=[{}, {}] lon=[{}, {}] lat=[{}, {}]>'.format(
            *(getattr(self, name) for name in self._EXTENT_FIELDS))
