"""

.. currentmodule:: obsharvest.core.schema.report

:platform: Unix, Mac
:synopsis: obsharvest Report Schema

.. contents:: Contents
    :local:
    :backlinks: top


"""
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field

from obsharvest.core.schema.enum import HarvestStateEnum
from obsharvest.core.schema.params import _to_camelcase

_REPORT_CONFIG = ConfigDict(
    # output fields to camelcase
    alias_generator=_to_camelcase,
    # allows both camelcase and underscore fields
    populate_by_name=True,
    # Instead of using enum class use enum value (string object)
    use_enum_values=True,
    validate_default=True,
)


class CompatibilityError(BaseModel):
    """An inconvertible unit between a file and a service"""

    model_config = ConfigDict(frozen=True, **_REPORT_CONFIG)

    procedure_id: str = Field(title="Procedure Identifier", description="The sensor of the file")
    service: str = Field(title="Service", description="The service holding the procedure with another unit")
    message: str = Field(title="Message", description="'uomA => uomB for property: p'")


class CompatibilityReport(BaseModel):
    """Unit compatibility of a file with a set of services"""

    model_config = ConfigDict(frozen=True, **_REPORT_CONFIG)

    file_name: Optional[str] = Field(None, title="File Name")
    warnings: List[str] = Field([], title="Warnings", description="The units of the file that do not parse")
    errors: List[CompatibilityError] = Field([], title="Errors",
                                             description="The units of the file that do not convert into "
                                                         "the unit of a service")
    failure: Optional[str] = Field(None, title="Failure", description="Why the check could not be run")

    @computed_field
    @property
    def valid(self) -> bool:
        """Invalid if and only if a conversion error was recorded or the check failed"""
        return not self.errors and self.failure is None

    def errors_for_service(self, service: str) -> List[CompatibilityError]:
        return [e for e in self.errors if e.service == service]

    def render(self) -> str:
        """
        The human readable report, one section per kind of problem, ending
        with OK. or KO.
        """
        lines = [f"{self.file_name or ''}:"]
        if self.warnings:
            lines.append("[WARNING] unparseable Unit Of Measure:")
            lines.extend(f" - {uom}" for uom in self.warnings)

        if self.errors:
            lines.append("[ERROR] unconvertible Unit Of Measure:")
            by_sensor: Dict[str, List[CompatibilityError]] = {}
            for error in self.errors:
                by_sensor.setdefault(error.procedure_id, []).append(error)
            for sensor_id, errors in by_sensor.items():
                lines.append(f" - Sensor {sensor_id}")
                services = {e.service for e in errors}
                for error in errors:
                    # the service is named only when there is more than one
                    prefix = "" if len(services) == 1 else f"[{error.service}] "
                    lines.append(f"\t - {prefix}{error.message}")

        if self.failure:
            lines.append(self.failure)
        lines.append("OK." if self.valid else "KO.")
        return "\n".join(lines) + "\n\n"


class HarvestResult(BaseModel):
    """Outputs of a harvest run"""

    model_config = _REPORT_CONFIG

    state: HarvestStateEnum = Field(HarvestStateEnum.DISCOVER, title="State",
                                    description="The last state reached by the run")
    datasource_id: Optional[int] = Field(None, title="Datasource Identifier")
    observations_inserted: int = Field(0, title="Observations Inserted")
    files_inserted: List[str] = Field([], title="Files Inserted")
    files_already_inserted: List[str] = Field([], title="Files Already Inserted")
    files_removed: List[str] = Field([], title="Files Removed")
    files_error: List[str] = Field([], title="Files In Error", description="Files with no data or in error")
    generated_data_ids: List[int] = Field([], title="Generated Data Identifiers")
    generated_sensor_ids: List[str] = Field([], title="Generated Sensor Identifiers")
    reports: List[CompatibilityReport] = Field([], title="Compatibility Reports")


class HarvestPreview(BaseModel):
    """The files of a folder and the columns guessed from their headers"""

    model_config = _REPORT_CONFIG

    files: List[str] = Field([], title="Files")
    headers: List[str] = Field([], title="Headers", description="The headers shared by every file")
    main_column: Optional[str] = Field(None, title="Main Column")
    date_column: Optional[str] = Field(None, title="Date Column")
    longitude_column: Optional[str] = Field(None, title="Longitude Column")
    latitude_column: Optional[str] = Field(None, title="Latitude Column")
