"""

.. currentmodule:: obsharvest.core.procedure

:platform: Unix, Mac
:synopsis: Procedure trees of tabular files

A procedure tree describes which sensor a file comes from, which fields it
measures and where and when it measured them, without building the result.

.. contents:: Contents
    :local:
    :backlinks: top

"""
from obsharvest.core import monitor
from obsharvest.core.bound import SpatioTemporalBound
from obsharvest.core.extractor import ColumnMappedExtractor
from obsharvest.core.models import ProcedureTree
from obsharvest.core.schema.params import ExtractorParameters

logger = monitor.get_logger(__name__)


class ProcedureTreeBuilder:
    """Build the single procedure tree of a file"""

    def __init__(self, path: str, parameters: ExtractorParameters):
        self.path = path
        self.parameters = parameters
        self._extractor = ColumnMappedExtractor(path, parameters)

    def build(self) -> ProcedureTree:
        """
        Scan the dates and positions of the file.

        :return: the procedure tree, of type ``Component``
        """
        extractor = self._extractor
        classification, rows = extractor.read()
        headers = classification.headers
        bound = SpatioTemporalBound()

        for line, row in extractor.iter_rows(rows):
            if not extractor.is_anchored(classification, row):
                continue
            if classification.date_index is not None:
                bound.add_date(extractor.parse_date(row[classification.date_index], line,
                                                    headers[classification.date_index]))
            position = extractor.parse_position(classification, row, line)
            if position is not None:
                bound.add_position(*position)

        tree = ProcedureTree(id=extractor.procedure_id,
                             measured_fields=[f.name for f in classification.measure_fields()],
                             spatial_bound=bound)
        logger.debug(f"Procedure {tree.id} of {self.path}: {tree.measured_fields} {bound}")
        return tree
