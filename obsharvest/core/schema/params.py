"""

.. currentmodule:: obsharvest.core.schema.params

:platform: Unix, Mac
:synopsis: obsharvest Parameter Schema

Parameters of the column mapped extraction and of a harvest run. A provider
keeps its extraction parameters as a string-keyed configuration map; these
models parse and produce that map.

.. contents:: Contents
    :local:
    :backlinks: top


"""
from typing import Any, ClassVar, Dict, List, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field

from obsharvest.core.schema.enum import ObservationKindEnum

#: Store kind of the column mapped csv files
CSV_STORE_KIND = "observationCsvFile"

#: Default separator between the measure columns of a configuration map
MEASURE_COLUMNS_SEPARATOR = "|"

#: Default date format (see :meth:`datetime.datetime.strptime`)
DEFAULT_DATE_FORMAT = "%Y-%m-%dT%H:%M:%SZ"


def _to_camelcase(string) -> str:
    """
        Change provided string with underscores to Javascript camelcase
        (e.g. to_camelcase -> toCamelcase)
        :param string: The string to transform
        :return:
        """
    return "".join(i and s[0].upper() + s[1:] or s for i, s in enumerate(string.split("_")))


class ExtractorParameters(BaseModel):
    """Column role assignments of a tabular file"""

    model_config = ConfigDict(
        # output fields to camelcase
        alias_generator=_to_camelcase,
        # allows both camelcase and underscore fields
        populate_by_name=True,
        # Instead of using enum class use enum value (string object)
        use_enum_values=True,
        validate_default=True,
    )

    separator: str = Field(",", title="Separator", description="The character separating the columns of a row")
    main_column: str = Field(title="Main Column",
                             description="The column every other value of a row is anchored to. A date for "
                                         "timeseries and trajectories, a number for profiles.")
    date_column: Optional[str] = Field(None, title="Date Column", description="The column holding the sample date")
    date_format: str = Field(DEFAULT_DATE_FORMAT, title="Date Format",
                             description="The strptime format of the date and main columns")
    longitude_column: Optional[str] = Field(None, title="Longitude Column")
    latitude_column: Optional[str] = Field(None, title="Latitude Column")
    measure_columns: List[str] = Field([], title="Measure Columns",
                                       description="The headers of the measured columns")
    observation_type: str = Field(ObservationKindEnum.TIMESERIE.value, title="Observation Type",
                                  description="One of Timeserie, Trajectory, Profile")
    foi_column: Optional[str] = Field(None, title="Feature of Interest Column",
                                      description="The column naming the feature of interest of a row")
    procedure_id: Optional[str] = Field(None, title="Procedure Identifier",
                                        description="Fixed procedure identifier. Defaults to the file base name.")
    extract_uom: bool = Field(False, title="Extract Unit Of Measure",
                              description="Read the unit of a measure column from its header, "
                                          "e.g. 'TEMP (Cel)'")
    quote_character: str = Field('"', title="Quote Character",
                                 description="The character quoting a cell that holds the separator")
    no_header: bool = Field(False, title="No Header",
                            description="The file has no header row. Requires direct_column_index.")
    direct_column_index: bool = Field(False, title="Direct Column Index",
                                      description="The column parameters are zero based column indices "
                                                  "instead of header names")

    # The fields stored in a provider configuration map
    configuration_fields: ClassVar[List[str]] = [
        "separator", "main_column", "date_column", "date_format", "longitude_column", "latitude_column",
        "measure_columns", "observation_type", "foi_column", "procedure_id", "extract_uom", "quote_character",
        "no_header", "direct_column_index"]

    @classmethod
    def from_configuration(cls, configuration: Dict[str, Any]) -> "ExtractorParameters":
        """
        Parse a provider configuration map. The measure columns may be given as
        a single string split on ``measure_columns_separator``.

        >>> p = ExtractorParameters.from_configuration({"main_column": "DATE", "measure_columns": "TEMP|PSAL"})
        >>> p.measure_columns
        ['TEMP', 'PSAL']

        :param configuration: string-keyed parameters
        :return: the parameters
        """
        values = {k: v for k, v in configuration.items() if v is not None}
        separator = values.pop("measure_columns_separator", MEASURE_COLUMNS_SEPARATOR)
        measure_columns = values.get("measure_columns")
        if isinstance(measure_columns, str):
            values["measure_columns"] = [c for c in measure_columns.split(separator) if c]
        for flag in ("extract_uom", "no_header", "direct_column_index"):
            if isinstance(values.get(flag), str):
                values[flag] = values[flag].lower() == "true"
        return cls(**values)

    def to_configuration(self) -> Dict[str, Any]:
        """Produce the provider configuration map of these parameters"""
        return self.model_dump(include=set(self.configuration_fields))


class HarvestParameters(ExtractorParameters):
    """Parameters of one harvest run"""

    data_folder: str = Field(title="Data Folder", description="Folder (or URL) containing the files to harvest")
    user_name: Optional[str] = Field(None, title="User Name", description="Remote folder user name")
    user_password: Optional[str] = Field(None, title="User Password", description="Remote folder password")
    remote_reading: bool = Field(False, title="Remote Reading",
                                 description="Read remote files in place instead of downloading them")
    service_ids: List[str] = Field([], title="Sensor Services",
                                   description="Identifiers of the target sensor services")
    dataset_identifier: str = Field(title="Dataset Identifier",
                                    description="Dataset the harvested data are attached to")
    store_id: str = Field(CSV_STORE_KIND, title="Store Identifier", description="Kind of store reading the files")
    format: Optional[str] = Field(None, title="Format", description="MIME type of the files")
    remove_previous_integration: bool = Field(False, title="Remove Previous Integration",
                                              description="Remove the providers and sensors of a previous "
                                                          "harvest of the same folder")
    check_compatibility: bool = Field(False, title="Check Compatibility",
                                      description="Check units against each service before importing")

    @classmethod
    def from_yaml(cls, path: str) -> "HarvestParameters":
        """
        Load harvest parameters from a YAML file

        :param path: the YAML file path
        :return: the parameters
        """
        with open(path, "r") as f:
            values = yaml.safe_load(f) or {}
        return cls(**values)

    def extractor_parameters(self) -> ExtractorParameters:
        """The extraction part of the harvest parameters"""
        return ExtractorParameters(**self.to_configuration())
