"""

.. currentmodule:: obsharvest.core.schema.enum

:platform: Unix, Mac
:synopsis: obsharvest Enumeration Schema

.. contents:: Contents
    :local:
    :backlinks: top


"""
from enum import Enum


class BaseEnum(Enum):
    """Base Enumeration Class that adds some helper methods"""

    @classmethod
    def values(cls):
        role_names = [member.value for role, member in cls.__members__.items()]
        return role_names

    @classmethod
    def names(cls):
        return cls._member_names_


class ObservationKindEnum(str, BaseEnum):
    """
    Kind of observation read from a tabular file. It drives which columns
    make it into the result payload and how the main column is read.
    """

    #: Main column is a date, positions stay out of the payload
    TIMESERIE = "Timeserie"

    #: Main column is a date, positions are part of the payload
    TRAJECTORY = "Trajectory"

    #: Main column is a number (depth, pressure), dates stay out of the payload
    PROFILE = "Profile"


class ColumnRoleEnum(str, BaseEnum):
    """
    Role of a header column
    """
    MAIN = "MAIN"
    DATE = "DATE"
    LONGITUDE = "LONGITUDE"
    LATITUDE = "LATITUDE"
    FOI = "FOI"
    MEASURE = "MEASURE"
    IGNORED = "IGNORED"


class PathStatusEnum(str, BaseEnum):
    """
    Status of a selected path of a datasource
    """
    PENDING = "PENDING"
    INTEGRATED = "INTEGRATED"
    COMPLETED = "COMPLETED"
    REMOVED = "REMOVED"
    NO_DATA = "NO_DATA"
    ERROR = "ERROR"


class HarvestStateEnum(str, BaseEnum):
    """
    States of a harvest run, in order
    """
    DISCOVER = "Discover"
    PURGE_PREVIOUS = "PurgePrevious"
    ENUMERATE = "Enumerate"
    PER_FILE_INTEGRATE = "PerFileIntegrate"
    GENERATE_IDENTITIES = "GenerateIdentities"
    DISTRIBUTE_TO_SERVICES = "DistributeToServices"
    DONE = "Done"


class ReadModeEnum(str, BaseEnum):
    """
    How the files of a datasource are read
    """

    #: Files are read where they are
    LOCAL = "LOCAL"

    #: Files are read through the network, without a local copy
    REMOTE = "REMOTE"
