"""

.. currentmodule:: obsharvest.core.store

:platform: Unix, Mac
:synopsis: Observation stores and providers

A store reads one file of a given kind. Store factories register themselves
by kind with :func:`observation_store`; a provider is a registered file
opened through the factory of its kind.

.. contents:: Contents
    :local:
    :backlinks: top

"""
from typing import Any, Dict, List, Optional

from obsharvest.core import monitor
from obsharvest.core.extractor import ColumnMappedExtractor
from obsharvest.core.models import ExtractionResult, Observation, Phenomenon, ProcedureTree, SamplingFeature, \
    TemporalExtent
from obsharvest.core.schema.params import CSV_STORE_KIND, ExtractorParameters

logger = monitor.get_logger(__name__)


class StoreException(Exception):
    """The exception class for stores and providers"""
    pass


class NotObservationProviderError(StoreException):
    """The provider does not serve observations"""
    pass


class StoreMount(type):
    """
    Store factory classes that extend this will register themselves as
    soon as they are decorated with :func:`observation_store`
    """
    factories: Dict[str, Any] = {}


def observation_store(cls):
    """Register a store factory by the id of its ``StoreMeta``"""

    StoreMount.factories[cls.get_meta().id] = cls
    return cls


def get_store_factory(store_kind: str):
    """
    Get the factory class registered for a store kind

    :param store_kind: the store kind, e.g. ``observationCsvFile``
    """
    try:
        return StoreMount.factories[store_kind]
    except KeyError:
        raise StoreException(f"No store registered for kind '{store_kind}'. "
                             f"Registered kinds are {sorted(StoreMount.factories)}")


class StoreFactoryPoint(metaclass=StoreMount):
    """
    Base class for store factories. Subclasses define an inner ``StoreMeta``
    class with ``id``, ``suffix``, ``mime_type`` and ``observation``.
    """

    @classmethod
    def get_meta(cls):
        """
        Gets the StoreMeta internal class that should be defined by subclasses.
        Raises an error if it is not found
        """
        meta = getattr(cls, 'StoreMeta', None)

        if not meta:
            raise ValueError("Must define inner class StoreMeta for {}".format(cls))
        return meta

    @classmethod
    def get_suffix(cls) -> str:
        return getattr(cls.get_meta(), 'suffix')

    @classmethod
    def get_mime_type(cls) -> Optional[str]:
        return getattr(cls.get_meta(), 'mime_type', None)

    @classmethod
    def is_observation_store(cls) -> bool:
        return getattr(cls.get_meta(), 'observation', False)

    @classmethod
    def accepts(cls, file_name: str) -> bool:
        """True if the file name has the suffix of the store, in any case"""
        return file_name.lower().endswith("." + cls.get_suffix().lower())

    def open(self, path: str, configuration: Dict[str, Any]):
        raise NotImplementedError


class CsvObservationStore:
    """Observations of a column mapped csv file"""

    def __init__(self, path: str, parameters: ExtractorParameters):
        self.path = path
        self.parameters = parameters
        self.extractor = ColumnMappedExtractor(path, parameters)

    def get_procedure_names(self) -> List[str]:
        return [self.extractor.procedure_id]

    def get_procedures(self) -> List[ProcedureTree]:
        return self.extractor.list_procedures()

    def get_phenomenon_names(self) -> List[str]:
        return self.extractor.list_phenomenon_names()

    def get_temporal_bounds(self) -> Optional[TemporalExtent]:
        return self.extractor.compute_temporal_bounds()

    def get_templates(self) -> List[Observation]:
        return self.extractor.get_templates()

    def get_results(self, sensor_id: Optional[str] = None, phenomena: Optional[List[Phenomenon]] = None,
                    features: Optional[List[SamplingFeature]] = None) -> ExtractionResult:
        """
        Extract the file

        :param sensor_id: the sensor the results are for. A csv file has one procedure only.
        :param phenomena: the phenomena already known by the caller
        :param features: the sampling features already known by the caller
        """
        if sensor_id is not None and sensor_id != self.extractor.procedure_id:
            logger.warning(f"Csv store {self.path} has no sensor {sensor_id}, "
                           f"its procedure is {self.extractor.procedure_id}")
        return self.extractor.extract(phenomena=phenomena, features=features)


@observation_store
class CsvObservationStoreFactory(StoreFactoryPoint):
    """Open column mapped csv files"""

    class StoreMeta:
        id = CSV_STORE_KIND
        suffix = "csv"
        mime_type = 'text/csv; subtype="om"'
        observation = True

    def open(self, path: str, configuration: Dict[str, Any]) -> CsvObservationStore:
        return CsvObservationStore(path, ExtractorParameters.from_configuration(configuration))


def open_store(store_kind: str, path: str, configuration: Dict[str, Any]):
    """
    Open a file with the factory of its store kind

    :param store_kind: the store kind
    :param path: the file path
    :param configuration: the string-keyed provider configuration map
    :return: the store
    """
    return get_store_factory(store_kind)().open(path, configuration)


class ObservationProvider:
    """
    A registered file. The store is opened on first use.
    """

    def __init__(self, id: int, store_kind: str, path: str, configuration: Dict[str, Any]):
        self.id = id
        self.store_kind = store_kind
        self.path = path
        self.configuration = configuration
        self._store = None

    def is_observation_provider(self) -> bool:
        return get_store_factory(self.store_kind).is_observation_store()

    @property
    def store(self):
        if self._store is None:
            self._store = open_store(self.store_kind, self.path, self.configuration)
        return self._store

    def get_observation_store(self):
        """The observation store, fails for providers of other kinds"""
        if not self.is_observation_provider():
            raise NotObservationProviderError(f"Provider {self.id} ({self.path}) is not an observation provider")
        return self.store

    def get_procedures(self) -> List[ProcedureTree]:
        return self.get_observation_store().get_procedures()

    def get_templates(self) -> List[Observation]:
        return self.get_observation_store().get_templates()

    def get_results(self, sensor_id: Optional[str] = None, phenomena: Optional[List[Phenomenon]] = None,
                    features: Optional[List[SamplingFeature]] = None) -> ExtractionResult:
        return self.get_observation_store().get_results(sensor_id, phenomena, features)

    def __repr__(self):
        return '<ObservationProvider %r %s>' % (self.id, self.path)


class ProviderLookup:
    """
    Resolve providers by identifier. Components needing providers are given
    an implementation at construction.
    """

    def get_provider(self, provider_id: int) -> ObservationProvider:
        raise NotImplementedError

    def get_provider_for_data(self, data_id: int) -> ObservationProvider:
        raise NotImplementedError
