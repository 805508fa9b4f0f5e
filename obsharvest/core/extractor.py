"""

.. currentmodule:: obsharvest.core.extractor

:platform: Unix, Mac
:synopsis: Column mapped extraction of observations from tabular files

The header row of a file gives each column one role: the main column every
value of a row is anchored to, the date column, the longitude and latitude
columns, the feature of interest column, the declared measure columns; every
other column is ignored. The rows are then scanned to build the phenomenon,
the procedure, the sampling features, the encoded result and the bound.

.. contents:: Contents
    :local:
    :backlinks: top

"""
import datetime
import os
import re
import uuid
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Set, Tuple

import pandas as pd

from obsharvest.core import monitor
from obsharvest.core.bound import SpatioTemporalBound
from obsharvest.core.measure import MeasureBlockBuilder
from obsharvest.core.models import DataRecord, ExtractionResult, Field, Observation, Phenomenon, \
    Position, ProcedureTree, SamplingFeature, TemporalExtent
from obsharvest.core.schema.enum import ColumnRoleEnum, ObservationKindEnum
from obsharvest.core.schema.params import ExtractorParameters
from obsharvest.core.types import TIME_FIELD_NAME

logger = monitor.get_logger(__name__)

# A header carrying its unit, e.g. "TEMP (Cel)"
_UOM_HEADER = re.compile(r"^(?P<name>[^(]*)\((?P<uom>[^)]*)\)")


class ExtractionError(Exception):
    """Structural failure reading a file: the file can not be extracted"""
    pass


class MissingHeaderError(ExtractionError):
    """The file has no header row"""
    pass


def _cell(value) -> str:
    # cells missing from short rows are NaN
    return value if isinstance(value, str) else ""


def header_names(cells: Iterable) -> List[str]:
    """
    The names of a header row, without surrounding whitespace

    >>> header_names([" DATE", "TEMP (Cel) "])
    ['DATE', 'TEMP (Cel)']
    """
    return [_cell(c).strip() for c in cells]


def read_table(path: str, separator: str = ",", quote_character: str = '"',
               no_header: bool = False) -> Tuple[List[str], List[List[str]]]:
    """
    Read a delimited file. Every cell is kept as its raw text. A row with
    more cells than the first row is skipped with a warning.

    :param path: the file path
    :param separator: the column separator
    :param quote_character: the character quoting a cell holding the separator
    :param no_header: the first row is data; the headers are then the column indices
    :return: the header row and the data rows
    """
    def _skip_bad_line(bad_line: List[str]):
        logger.warning(f"Skipping malformed row in {path}: {len(bad_line)} cells {bad_line}")
        return None

    try:
        frame = pd.read_csv(path, sep=separator, quotechar=quote_character, header=None, dtype=str,
                            keep_default_na=False, skip_blank_lines=True, engine="python",
                            on_bad_lines=_skip_bad_line)
    except pd.errors.EmptyDataError:
        raise MissingHeaderError(f"csv headers not found in {path}")
    except (OSError, ValueError) as e:
        # parser errors and undecodable bytes
        raise ExtractionError(f"problem reading csv file {path}: {e}") from e

    if frame.empty:
        raise MissingHeaderError(f"csv headers not found in {path}")

    if no_header:
        headers = [str(i) for i in range(frame.shape[1])]
        data = frame
    else:
        headers = header_names(frame.iloc[0])
        data = frame.iloc[1:]
    rows = [[_cell(c) for c in row] for row in data.itertuples(index=False, name=None)]
    return headers, rows


def split_uom(header: str, extract_uom: bool) -> Tuple[str, Optional[str]]:
    """
    Split a header into a field name and a unit

    >>> split_uom("TEMP (Cel)", True)
    ('TEMP', 'Cel')
    >>> split_uom("TEMP (Cel)", False)
    ('TEMP (Cel)', None)
    """
    if extract_uom:
        match = _UOM_HEADER.match(header)
        if match:
            return match.group("name").strip(), match.group("uom")
    return header, None


def check_observation_kind(kind: str) -> ObservationKindEnum:
    try:
        return ObservationKindEnum(kind)
    except ValueError:
        raise ExtractionError(f"Unexpected observation type:{kind}. "
                              f"Allowed values are {', '.join(ObservationKindEnum.values())}.")


@dataclass
class ColumnClassification:
    """
    The role of every column of a header row.

    Fields:
        - *headers:* the header row
        - *roles:* one :class:`ColumnRoleEnum` per header
        - *kind:* the observation kind
        - *payload_indices:* the columns written in a block after the main value, in header order
    """
    headers: List[str]
    roles: List[ColumnRoleEnum]
    kind: ObservationKindEnum
    extract_uom: bool = False
    main_index: Optional[int] = None
    date_index: Optional[int] = None
    longitude_index: Optional[int] = None
    latitude_index: Optional[int] = None
    foi_index: Optional[int] = None
    measure_indices: List[int] = field(default_factory=list)
    payload_indices: List[int] = field(default_factory=list)

    def has_position(self) -> bool:
        return self.longitude_index is not None and self.latitude_index is not None

    def measure_fields(self) -> List[Field]:
        """The declared measure fields, in header order"""
        ordinals = {index: ordinal for ordinal, index in enumerate(self.payload_indices, start=2)}
        fields = []
        for index in self.measure_indices:
            name, uom = split_uom(self.headers[index], self.extract_uom)
            fields.append(Field(name=name, uom=uom, ordinal=ordinals[index]))
        return fields

    def record(self) -> DataRecord:
        """The result shape: the main field then the payload fields"""
        if self.kind == ObservationKindEnum.PROFILE:
            main_name, main_uom = split_uom(self.headers[self.main_index], self.extract_uom)
            main = Field(name=main_name, uom=main_uom, ordinal=1)
        else:
            main = Field(name=TIME_FIELD_NAME, ordinal=1)
        fields = [main]
        for ordinal, index in enumerate(self.payload_indices, start=2):
            name, uom = split_uom(self.headers[index], self.extract_uom)
            fields.append(Field(name=name, uom=uom, ordinal=ordinal))
        return DataRecord(kind=self.kind.value, fields=fields)


def classify_header(headers: List[str], parameters: ExtractorParameters) -> ColumnClassification:
    """
    Give each column exactly one role. Roles are checked in the order main,
    feature of interest, date, latitude, longitude, measure. A column that is
    both the main and the date column is the main column and anchors the date.
    The main column of a timeserie or a trajectory is a date: it anchors the
    date unless another date column is declared.

    Dates stay out of the payload of profiles; positions stay out of the
    payload unless the observation is a trajectory.

    With ``direct_column_index`` the column parameters are column indices,
    e.g. ``main_column="0"``, matched against the column positions.

    :param headers: the header row
    :param parameters: the column role assignments
    :return: the classification
    """
    kind = check_observation_kind(parameters.observation_type)
    if parameters.no_header and not parameters.direct_column_index:
        raise ExtractionError("A file without header needs its columns given by index (direct_column_index)")

    def _column(name: Optional[str]) -> Optional[str]:
        if not name:
            return None
        return name.strip() if parameters.direct_column_index else name

    main_column = _column(parameters.main_column)
    date_column = _column(parameters.date_column)
    foi_column = _column(parameters.foi_column)
    latitude_column = _column(parameters.latitude_column)
    longitude_column = _column(parameters.longitude_column)
    measure_columns = {_column(c) for c in parameters.measure_columns}
    result = ColumnClassification(headers=headers, roles=[], kind=kind, extract_uom=parameters.extract_uom)

    for i, header in enumerate(headers):
        key = str(i) if parameters.direct_column_index else header
        if key == main_column:
            role = ColumnRoleEnum.MAIN
            result.main_index = i
            if key == date_column or (kind != ObservationKindEnum.PROFILE and result.date_index is None):
                result.date_index = i
        elif key == foi_column:
            role = ColumnRoleEnum.FOI
            result.foi_index = i
        elif key == date_column:
            role = ColumnRoleEnum.DATE
            result.date_index = i
            if kind != ObservationKindEnum.PROFILE:
                result.payload_indices.append(i)
        elif key == latitude_column:
            role = ColumnRoleEnum.LATITUDE
            result.latitude_index = i
            if kind == ObservationKindEnum.TRAJECTORY:
                result.payload_indices.append(i)
        elif key == longitude_column:
            role = ColumnRoleEnum.LONGITUDE
            result.longitude_index = i
            if kind == ObservationKindEnum.TRAJECTORY:
                result.payload_indices.append(i)
        elif key in measure_columns:
            role = ColumnRoleEnum.MEASURE
            result.measure_indices.append(i)
            result.payload_indices.append(i)
        else:
            role = ColumnRoleEnum.IGNORED
        result.roles.append(role)

    if result.main_index is None:
        raise ExtractionError(f"The main column '{parameters.main_column}' is not in the headers {headers}")
    return result


class _ObservationRun:
    """The rows of one observation being built"""

    def __init__(self, foi: Optional[str] = None):
        self.foi = foi
        self.count = 0
        self.bound = SpatioTemporalBound()
        self.builder = MeasureBlockBuilder()
        self.positions: List[Position] = []
        self.known_positions: Set[Position] = set()

    def add_position(self, position: Position):
        self.bound.add_position(*position)
        if position not in self.known_positions:
            self.known_positions.add(position)
            self.positions.append(position)


class ColumnMappedExtractor:
    """
    Extract the observations of one tabular file.

    Each operation reads the file again; no state is kept between calls.
    """

    def __init__(self, path: str, parameters: ExtractorParameters):
        """
        :param path: the file path
        :param parameters: the column role assignments
        """
        self.path = path
        self.parameters = parameters

    @property
    def procedure_id(self) -> str:
        """The fixed procedure identifier, or the file base name without extension"""
        if self.parameters.procedure_id:
            return self.parameters.procedure_id
        return os.path.splitext(os.path.basename(self.path))[0]

    def read(self) -> Tuple[ColumnClassification, List[List[str]]]:
        headers, rows = read_table(self.path, self.parameters.separator, self.parameters.quote_character,
                                   self.parameters.no_header)
        return classify_header(headers, self.parameters), rows

    def read_header(self) -> ColumnClassification:
        return self.read()[0]

    def parse_date(self, raw: str, line: int, column: str) -> datetime.datetime:
        """Parse a date cell. A date that does not parse fails the extraction."""
        try:
            return datetime.datetime.strptime(raw, self.parameters.date_format)
        except ValueError:
            raise ExtractionError(f"Problem parsing date in {self.path} at line {line} and column {column} "
                                  f"(value='{raw}', format='{self.parameters.date_format}')")

    def parse_position(self, classification: ColumnClassification, row: List[str], line: int) -> Optional[Position]:
        """
        The (longitude, latitude) of a row, None without position columns. A
        coordinate that does not parse leaves the row without position.
        """
        if not classification.has_position():
            return None
        position = []
        for index in (classification.longitude_index, classification.latitude_index):
            try:
                position.append(float(row[index]))
            except ValueError:
                logger.warning(f"Problem parsing coordinate in {self.path} at line {line} and column "
                               f"{classification.headers[index]} (value='{row[index]}'). no position for this line")
                return None
        return position[0], position[1]

    def iter_rows(self, rows: List[List[str]]) -> Iterable[Tuple[int, List[str]]]:
        # line 1 is the header, when there is one
        return enumerate(rows, start=1 if self.parameters.no_header else 2)

    def is_anchored(self, classification: ColumnClassification, row: List[str]) -> bool:
        """False for a profile row whose main value is not a number"""
        if classification.kind != ObservationKindEnum.PROFILE:
            return True
        try:
            float(row[classification.main_index])
            return True
        except ValueError:
            return False

    def extract(self, phenomena: Optional[List[Phenomenon]] = None,
                features: Optional[List[SamplingFeature]] = None) -> ExtractionResult:
        """
        Extract the file.

        :param phenomena: phenomena already known, reused when one has the same fields
        :param features: sampling features already known, reused when one has the same geometry
        :return: the extraction result
        """
        classification, rows = self.read()
        headers = classification.headers
        kind = classification.kind

        fields = classification.measure_fields()
        phenomenon = Phenomenon.from_fields(fields)
        for known in phenomena or []:
            if known.field_names() == phenomenon.field_names():
                phenomenon = known
                break

        record = classification.record()
        global_bound = SpatioTemporalBound()
        result = ExtractionResult(fields=fields, phenomenon=phenomenon, spatial_bound=global_bound)

        run = _ObservationRun()
        for line, row in self.iter_rows(rows):
            foi = row[classification.foi_index] if classification.foi_index is not None else None
            if run.count > 0 and foi != run.foi:
                self._close_run(run, result, record, features)
                run = _ObservationRun()
            run.foi = foi

            main_raw = row[classification.main_index]
            main_header = headers[classification.main_index]

            # the main value anchors the row, a profile row without one is dropped
            if kind == ObservationKindEnum.PROFILE:
                try:
                    main_value = float(main_raw)
                except ValueError:
                    logger.warning(f"Problem parsing double for main field in {self.path} at line {line} and "
                                   f"column {main_header} (value='{main_raw}'). skipping line...")
                    continue
                main_date = None
            else:
                main_date = self.parse_date(main_raw, line, main_header)

            instant = None
            if classification.date_index is not None:
                if classification.date_index == classification.main_index:
                    instant = main_date
                else:
                    instant = self.parse_date(row[classification.date_index], line,
                                              headers[classification.date_index])
            run.bound.add_date(instant)

            position = self.parse_position(classification, row, line)
            if position is not None:
                run.add_position(position)

            if main_date is None:
                run.builder.append_value(main_value)
            else:
                run.builder.append_date(main_date)
            for index in classification.payload_indices:
                if index == classification.date_index:
                    run.builder.append_date(instant)
                else:
                    run.builder.append_cell(row[index], line=line, column=headers[index])
            run.builder.close_block()
            run.count += 1

        if run.count > 0 or not result.observations:
            self._close_run(run, result, record, features)

        result.procedures.append(ProcedureTree(id=self.procedure_id,
                                               measured_fields=[f.name for f in fields],
                                               spatial_bound=global_bound))
        logger.info(f"Extracted {result.row_count()} rows in {len(result.observations)} observation(s) "
                    f"from {self.path} ({result.warning_count} cell warning(s))")
        return result

    def _close_run(self, run: _ObservationRun, result: ExtractionResult, record: DataRecord,
                   features: Optional[List[SamplingFeature]]):
        """Build the observation of a run and add it to the result"""
        foi_id = run.foi if run.foi is not None else f"foi-{uuid.uuid4()}"
        feature = SamplingFeature.from_positions(foi_id, run.positions, distinct=True)
        for known in features or []:
            if known.same_geometry(feature) and (run.foi is None or known.id == feature.id):
                feature = known
                break

        run.bound.add_geometry(feature)
        result.spatial_bound.merge(run.bound)
        result.spatial_bound.geometry = feature
        if all(f.id != feature.id for f in result.features_of_interest):
            result.features_of_interest.append(feature)

        result.observations.append(Observation(id=str(uuid.uuid4()),
                                               feature_of_interest=feature,
                                               phenomenon=result.phenomenon,
                                               procedure=self.procedure_id,
                                               count=run.count,
                                               result_structure=record,
                                               result=run.builder.build(),
                                               sampling_time=run.bound.to_temporal_extent()))
        result.warning_count += run.builder.warning_count

    def list_phenomenon_names(self) -> List[str]:
        """The names of the measure fields, read from the header"""
        return [f.name for f in self.read_header().measure_fields()]

    def compute_temporal_bounds(self) -> Optional[TemporalExtent]:
        """The time interval of the file, ``None`` without a date column"""
        classification, rows = self.read()
        bound = SpatioTemporalBound()
        if classification.date_index is None:
            return None
        header = classification.headers[classification.date_index]
        for line, row in self.iter_rows(rows):
            if not self.is_anchored(classification, row):
                continue
            bound.add_date(self.parse_date(row[classification.date_index], line, header))
        return bound.to_temporal_extent()

    def list_procedures(self) -> List[ProcedureTree]:
        """The procedure trees of the file (exactly one)"""
        from obsharvest.core.procedure import ProcedureTreeBuilder
        return [ProcedureTreeBuilder(self.path, self.parameters).build()]

    def get_templates(self) -> List[Observation]:
        """The structure only observation of the procedure, read from the header"""
        classification = self.read_header()
        phenomenon = Phenomenon.from_fields(classification.measure_fields())
        return [Observation(id=f"{self.procedure_id}-template",
                            feature_of_interest=None,
                            phenomenon=phenomenon,
                            procedure=self.procedure_id,
                            count=0,
                            result_structure=classification.record())]
