"""

.. currentmodule:: obsharvest.core.types

:platform: Unix, Mac
:synopsis: obsharvest type constants

.. contents:: Contents
    :local:
    :backlinks: top

"""


class SpatialSamplingShapes(object):
    """
    Spatial sampling shape describing a sampling feature

    Controlled CV list as defined by OGC Observation & Measurement GM_Shape.
    """

    #: A curve (trajectory) made of the ordered distinct positions of a file.
    SHAPE_CURVE = "CURVE"

    #: A single position, or no position at all.
    SHAPE_POINT = "POINT"


class MeasureEncoding(object):
    """
    Text encoding of a result payload
    """

    #: Separator between the values of a block
    TOKEN_SEPARATOR = ","

    #: Terminator written after each block (one block per sample row)
    BLOCK_SEPARATOR = "@@"

    #: Decimal separator of numeric values
    DECIMAL_SEPARATOR = "."


#: Type of every procedure tree produced from a file
PROCEDURE_TYPE_COMPONENT = "Component"

#: Name of the time main field of timeseries and trajectories
TIME_FIELD_NAME = "time"
