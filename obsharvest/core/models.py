"""

.. currentmodule:: obsharvest.core.models

:synopsis: The obsharvest Observation & Measurement models

.. contents:: Contents
    :local:
    :backlinks: top

"""
import json

from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, List, Optional, Tuple

from obsharvest.core.types import PROCEDURE_TYPE_COMPONENT, SpatialSamplingShapes

if TYPE_CHECKING:
    from obsharvest.core.bound import SpatioTemporalBound

#: A (longitude, latitude) position
Position = Tuple[float, float]


class JSONSerializable:
    """
    Make a Data class serializable to json
    """

    def to_json(self):
        def props(o):
            """Convert object to dict.  If prefixed with, _ remove it"""
            if hasattr(o, "isoformat"):
                return o.isoformat()
            try:
                map = {}
                for k in o.__dict__.keys():
                    if not k.startswith("__"):
                        if k.startswith("_"):
                            map[k[1:]] = o.__dict__[k]
                        else:
                            map[k] = o.__dict__[k]
                return map
            except Exception:
                # There is not __dict__, return a string representation
                return str(o)

        return json.dumps(self, default=props,
                          sort_keys=True, indent=4)

    def to_dict(self):
        return json.loads(self.to_json())


@dataclass(frozen=True)
class Field(JSONSerializable):
    """
    A measured column of a file

    Fields:
        - *name:* string, identity of the field within a procedure
        - *uom:* string, unit of measure, may be None
        - *ordinal:* int, position of the field in the result record (1 based)
    """
    name: str
    uom: Optional[str] = None
    ordinal: int = 0

    def __str__(self):
        return self.__unicode__()

    def __unicode__(self):
        return self.name


@dataclass
class Phenomenon(JSONSerializable):
    """
    The observed property of an extraction. A composite when there is more than
    one field.

    Fields:
        - *id:* string, derived from the field names
        - *name:* string
        - *fields:* list of :class:`Field`
    """
    id: str
    name: str
    fields: List[Field] = field(default_factory=list)

    @classmethod
    def from_fields(cls, fields: List[Field]) -> "Phenomenon":
        """
        Build the phenomenon of a field list. Same field names in the same
        order give the same identifier.

        >>> Phenomenon.from_fields([Field("TEMP"), Field("PSAL")]).id
        'composite-TEMP-PSAL'
        >>> Phenomenon.from_fields([Field("TEMP")]).id
        'TEMP'
        """
        names = [f.name for f in fields]
        if len(names) == 1:
            identifier = names[0]
        else:
            identifier = "-".join(["composite"] + names)
        return cls(id=identifier, name=identifier, fields=list(fields))

    def field_names(self) -> List[str]:
        return [f.name for f in self.fields]

    def __str__(self):
        return self.__unicode__()

    def __unicode__(self):
        return self.id


@dataclass
class SamplingFeature(JSONSerializable):
    """
    The spatial subject of an observation

    Fields:
        - *id:* string
        - *shape:* POINT or CURVE, see :class:`obsharvest.core.types.SpatialSamplingShapes`
        - *positions:* ordered list of distinct (lon, lat) positions
    """
    id: str
    shape: str = SpatialSamplingShapes.SHAPE_POINT
    positions: List[Position] = field(default_factory=list)

    def __post_init__(self):
        if self.shape not in (SpatialSamplingShapes.SHAPE_POINT, SpatialSamplingShapes.SHAPE_CURVE):
            raise ValueError(f"Invalid sampling feature shape '{self.shape}'")

    @classmethod
    def from_positions(cls, id: str, positions: List[Position], distinct: bool = False) -> "SamplingFeature":
        """
        A point for at most one distinct position, a curve otherwise

        :param distinct: the positions hold no duplicate
        """
        positions = list(positions) if distinct else list(dict.fromkeys(positions))
        shape = SpatialSamplingShapes.SHAPE_POINT if len(positions) <= 1 else SpatialSamplingShapes.SHAPE_CURVE
        return cls(id=id, shape=shape, positions=positions)

    def same_geometry(self, other: "SamplingFeature") -> bool:
        return self.shape == other.shape and self.positions == other.positions

    def __str__(self):
        return self.__unicode__()

    def __unicode__(self):
        return self.id


@dataclass
class TemporalExtent(JSONSerializable):
    """The time interval of an observation. An instant when begin equals end."""
    begin: object
    end: object

    def is_instant(self) -> bool:
        return self.begin == self.end


@dataclass
class DataRecord(JSONSerializable):
    """
    Declared shape of a result: the main field followed by every field written
    in a block, in block order.

    Fields:
        - *kind:* the observation kind (Timeserie, Trajectory, Profile)
        - *fields:* list of :class:`Field`
    """
    kind: str
    fields: List[Field] = field(default_factory=list)

    def field_names(self) -> List[str]:
        return [f.name for f in self.fields]


@dataclass
class Observation(JSONSerializable):
    """
    An Observation & Measurement observation

    Fields:
        - *id:* string
        - *feature_of_interest:* :class:`SamplingFeature`
        - *phenomenon:* :class:`Phenomenon`
        - *procedure:* string, the procedure identifier
        - *count:* int, the number of blocks of the result
        - *result_structure:* :class:`DataRecord`
        - *result:* string, the encoded blocks, None for a template
        - *sampling_time:* :class:`TemporalExtent`, may be None
    """
    id: str
    feature_of_interest: Optional[SamplingFeature]
    phenomenon: Phenomenon
    procedure: str
    count: int
    result_structure: DataRecord
    result: Optional[str] = None
    sampling_time: Optional[TemporalExtent] = None

    def template(self) -> "Observation":
        """The structure only copy of the observation: no rows, no result"""
        return replace(self, id=f"{self.procedure}-template", feature_of_interest=None, count=0,
                       result=None, sampling_time=None)

    def is_template(self) -> bool:
        return self.result is None

    def __str__(self):
        return self.__unicode__()

    def __unicode__(self):
        return self.id


@dataclass
class ProcedureTree(JSONSerializable):
    """
    Lightweight description of a sensor identity

    Fields:
        - *id:* string, the procedure identifier
        - *type:* string, always "Component" for a file
        - *measured_fields:* list of field names
        - *spatial_bound:* :class:`obsharvest.core.bound.SpatioTemporalBound`
        - *children:* list of :class:`ProcedureTree`
    """
    id: str
    type: str = PROCEDURE_TYPE_COMPONENT
    measured_fields: List[str] = field(default_factory=list)
    spatial_bound: Optional["SpatioTemporalBound"] = None
    children: List["ProcedureTree"] = field(default_factory=list)

    def __str__(self):
        return self.__unicode__()

    def __unicode__(self):
        return self.id


@dataclass
class ExtractionResult(JSONSerializable):
    """
    Everything extracted from one file

    Fields:
        - *fields:* list of :class:`Field`, the measure fields
        - *phenomenon:* :class:`Phenomenon`
        - *observations:* list of :class:`Observation`
        - *procedures:* list of :class:`ProcedureTree`
        - *features_of_interest:* list of :class:`SamplingFeature`
        - *spatial_bound:* :class:`obsharvest.core.bound.SpatioTemporalBound`
        - *warning_count:* int, the number of cells replaced by 0.0
    """
    fields: List[Field] = field(default_factory=list)
    phenomenon: Optional[Phenomenon] = None
    observations: List[Observation] = field(default_factory=list)
    procedures: List[ProcedureTree] = field(default_factory=list)
    features_of_interest: List[SamplingFeature] = field(default_factory=list)
    spatial_bound: Optional["SpatioTemporalBound"] = None
    warning_count: int = 0

    def row_count(self) -> int:
        return sum(o.count for o in self.observations)
