"""

.. currentmodule:: obsharvest.core.orchestrator

:platform: Unix, Mac
:synopsis: Harvest of a folder of files into sensor services

A harvest run goes through the states of
:class:`obsharvest.core.schema.enum.HarvestStateEnum`:

* *Discover*: get or create the datasource of the folder
* *PurgePrevious*: optionally remove the sensors and providers of a previous harvest
* *Enumerate*: select the files of the folder
* *PerFileIntegrate*: open each new file as a provider with its data
* *GenerateIdentities*: register one sensor per procedure tree of the new data
* *DistributeToServices*: link the sensors to each service and import the
  observations once per physical store

.. contents:: Contents
    :local:
    :backlinks: top

"""
import os
import tempfile
import threading
import uuid
from contextlib import contextmanager
from typing import Dict, Iterable, List, NamedTuple, Optional, Set, Tuple

from obsharvest.core import monitor
from obsharvest.core.access import AccessException, download_file, is_remote, list_remote_files
from obsharvest.core.checker import CompatibilityChecker
from obsharvest.core.extractor import ExtractionError
from obsharvest.core.models import ProcedureTree
from obsharvest.core.repository import HarvestRepository
from obsharvest.core.schema.enum import HarvestStateEnum, PathStatusEnum, ReadModeEnum
from obsharvest.core.schema.params import HarvestParameters
from obsharvest.core.schema.report import HarvestResult
from obsharvest.core.service import BackingStoreIdentity, SensorService
from obsharvest.core.sqlalchemy_models import DataSource
from obsharvest.core.store import StoreException, get_store_factory, open_store

logger = monitor.get_logger(__name__)


class HarvestException(Exception):
    """The exception class for harvest runs"""
    pass


class DatasourceLockRegistry:
    """
    Advisory locks, one per datasource location. Two runs on the same
    location do not overlap.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[str, threading.Lock] = {}

    def get(self, location: str) -> threading.Lock:
        with self._guard:
            if location not in self._locks:
                self._locks[location] = threading.Lock()
            return self._locks[location]

    @contextmanager
    def hold(self, location: str, timeout: Optional[float] = None):
        """
        Hold the lock of a location

        :param location: the datasource location
        :param timeout: seconds to wait for the lock, forever if None
        :raises HarvestException: the lock was not acquired in time
        """
        lock = self.get(location)
        if not lock.acquire(timeout=-1 if timeout is None else timeout):
            raise HarvestException(f"A harvest of {location} is already running")
        try:
            yield
        finally:
            lock.release()


DATASOURCE_LOCKS = DatasourceLockRegistry()
"""The locks shared by the orchestrators of a process"""


class GeneratedSensor(NamedTuple):
    data_id: int
    sensor_id: int
    identifier: str


class HarvestOrchestrator:
    """
    Harvest folders of files into sensor services
    """

    def __init__(self, repository: HarvestRepository, services: Iterable[SensorService],
                 checker: Optional[CompatibilityChecker] = None,
                 lock_registry: Optional[DatasourceLockRegistry] = None,
                 lock_timeout: Optional[float] = None, work_folder: Optional[str] = None):
        """
        :param repository: the harvest bookkeeping, also used to resolve providers
        :param services: the services a run may target, by identifier
        :param checker: the unit checker used when a run asks for it
        :param lock_registry: the per datasource locks
        :param lock_timeout: seconds to wait for the lock of a datasource, forever if None
        :param work_folder: where remote files are downloaded, a temporary folder if None
        """
        self.repository = repository
        self.services: Dict[str, SensorService] = {s.identifier: s for s in services}
        self.checker = checker or CompatibilityChecker(repository)
        self.locks = lock_registry or DATASOURCE_LOCKS
        self.lock_timeout = lock_timeout
        self.work_folder = work_folder

    def _transition(self, result: HarvestResult, state: HarvestStateEnum, location: str):
        result.state = state
        logger.info(f"Harvest of {location}: {state.value}")

    def resolve_services(self, service_ids: List[str]) -> List[SensorService]:
        services = []
        for service_id in service_ids:
            if service_id not in self.services:
                raise HarvestException(f"Unknown sensor service '{service_id}'")
            services.append(self.services[service_id])
        return services

    @monitor.ctx_harvest
    def run(self, parameters: HarvestParameters) -> HarvestResult:
        """
        Harvest a folder.

        :param parameters: the harvest parameters
        :return: the outputs of the run
        :raises HarvestException: a file could not be integrated, the run is aborted
        """
        location = parameters.data_folder
        services = self.resolve_services(parameters.service_ids)
        result = HarvestResult()

        with self.locks.hold(location, timeout=self.lock_timeout):
            self._transition(result, HarvestStateEnum.DISCOVER, location)
            datasource = self.discover(parameters)
            result.datasource_id = datasource.id

            if parameters.remove_previous_integration:
                self._transition(result, HarvestStateEnum.PURGE_PREVIOUS, location)
                self.purge_previous(datasource.id)

            self._transition(result, HarvestStateEnum.ENUMERATE, location)
            self.enumerate(datasource)

            self._transition(result, HarvestStateEnum.PER_FILE_INTEGRATE, location)
            data_ids = self.integrate(datasource, parameters, result)

            self._transition(result, HarvestStateEnum.GENERATE_IDENTITIES, location)
            sensors = self.generate_identities(data_ids, result)

            self._transition(result, HarvestStateEnum.DISTRIBUTE_TO_SERVICES, location)
            blocked = self._admission_control(data_ids, services, result) \
                if parameters.check_compatibility else set()
            self.distribute(sensors, services, result, blocked)

            self._transition(result, HarvestStateEnum.DONE, location)
        logger.info(f"Harvest of {location}: {len(result.files_inserted)} file(s) inserted, "
                    f"{result.observations_inserted} observation(s) inserted")
        return result

    # -- Discover --

    def discover(self, parameters: HarvestParameters) -> DataSource:
        """
        Get the datasource of the folder, or create it. The store kind, format,
        read mode and credentials of the run replace those of a known datasource.
        """
        factory = get_store_factory(parameters.store_id)
        read_mode = ReadModeEnum.REMOTE if parameters.remote_reading else ReadModeEnum.LOCAL
        settings = dict(store_kind=parameters.store_id,
                        format=parameters.format or factory.get_mime_type(),
                        read_mode=read_mode.value,
                        username=parameters.user_name,
                        pwd=parameters.user_password)

        datasource = self.repository.get_datasource_by_url(parameters.data_folder)
        if datasource is None:
            return self.repository.create_datasource(url=parameters.data_folder, **settings)
        return self.repository.update_datasource(datasource.id, **settings)

    # -- PurgePrevious --

    def purge_previous(self, datasource_id: int):
        """
        Remove what a previous harvest of the datasource produced: sensors are
        unlinked from their services and deleted before their providers.
        """
        provider_ids = self.repository.get_provider_ids(datasource_id)

        sensor_ids: List[int] = []
        for provider_id in provider_ids:
            for data_id in self.repository.get_data_ids(provider_id):
                for sensor_id in self.repository.get_sensor_ids_for_data(data_id):
                    self._collect_sensor(sensor_id, sensor_ids)

        for sensor_id in sensor_ids:
            identifier = self.repository.get_sensor_identifier(sensor_id)
            for service_id in self.repository.get_linked_service_ids(sensor_id):
                self.repository.unlink_sensor_from_service(sensor_id, service_id)
            for service in self.services.values():
                service.backend.remove_procedure(identifier)
        for sensor_id in sensor_ids:
            self.repository.delete_sensor(sensor_id)
        for provider_id in provider_ids:
            self.repository.delete_provider(provider_id)
        self.repository.clear_selected_paths(datasource_id)
        logger.info(f"Removed {len(sensor_ids)} sensor(s) and {len(provider_ids)} provider(s) "
                    f"of datasource {datasource_id}")

    def _collect_sensor(self, sensor_id: int, collected: List[int]):
        if sensor_id in collected:
            return
        collected.append(sensor_id)
        for child_id in self.repository.get_sensor_children(sensor_id):
            self._collect_sensor(child_id, collected)

    # -- Enumerate --

    def enumerate(self, datasource: DataSource) -> List[str]:
        """
        Select the files of the datasource having the suffix of its store kind.
        A file already selected is not selected again, a selected file that is
        no longer listed is marked REMOVED.

        :return: the paths newly selected
        """
        factory = get_store_factory(datasource.store_kind)
        location = datasource.url
        if is_remote(location):
            try:
                paths = list_remote_files(location, factory.get_suffix(), datasource.username, datasource.pwd)
            except AccessException as e:
                raise HarvestException(f"Error while opening data location {location}: {e}") from e
        else:
            if not os.path.isdir(location):
                raise HarvestException(f"The source folder {location} does not point to a directory")
            paths = [os.path.join(location, name) for name in sorted(os.listdir(location))
                     if factory.accepts(name) and os.path.isfile(os.path.join(location, name))]

        listed = set(paths)
        for selected in self.repository.get_selected_paths(datasource.id):
            if selected.path not in listed and selected.status != PathStatusEnum.REMOVED.value:
                logger.info(f"{selected.path} is no longer in {location}")
                self.repository.update_path_status(datasource.id, selected.path, PathStatusEnum.REMOVED.value)

        added = [path for path in paths if self.repository.add_selected_path(datasource.id, path)]
        logger.info(f"{len(paths)} file(s) found in {location}, {len(added)} newly selected")
        return added

    # -- PerFileIntegrate --

    def _local_path(self, datasource: DataSource, path: str) -> str:
        if not is_remote(path) or datasource.read_mode == ReadModeEnum.REMOTE.value:
            return path
        if self.work_folder is None:
            self.work_folder = tempfile.mkdtemp(prefix="obsharvest-")
        return download_file(path, self.work_folder, datasource.username, datasource.pwd)

    def integrate(self, datasource: DataSource, parameters: HarvestParameters, result: HarvestResult) -> List[int]:
        """
        Integrate the selected paths that are not integrated yet.

        :return: the new data identifiers
        :raises HarvestException: a file could not be integrated
        """
        dataset_id = self.repository.get_or_create_dataset(parameters.dataset_identifier)
        configuration = parameters.to_configuration()
        data_ids: List[int] = []

        for selected in self.repository.get_selected_paths(datasource.id):
            path = selected.path
            status = selected.status
            if status in (PathStatusEnum.NO_DATA.value, PathStatusEnum.ERROR.value):
                logger.warning(f"Skipping {path}: {status}")
                result.files_error.append(path)
                continue
            if status in (PathStatusEnum.INTEGRATED.value, PathStatusEnum.COMPLETED.value):
                result.files_already_inserted.append(path)
                continue
            if status == PathStatusEnum.REMOVED.value:
                if selected.provider_id is not None:
                    self.repository.delete_provider(selected.provider_id)
                self.repository.delete_path(datasource.id, path)
                result.files_removed.append(path)
                continue

            monitor.set_ctx_harvest_where(path)
            try:
                local_path = self._local_path(datasource, path)
                store = open_store(datasource.store_kind, local_path, configuration)
                extraction = store.get_results()
            except (ExtractionError, StoreException, AccessException) as e:
                self.repository.update_path_status(datasource.id, path, PathStatusEnum.ERROR.value)
                raise HarvestException(f"Error while integrating {path}: {e}") from e
            finally:
                monitor.set_ctx_harvest_where()

            if extraction.row_count() == 0:
                logger.warning(f"No data in {path}")
                self.repository.update_path_status(datasource.id, path, PathStatusEnum.NO_DATA.value)
                result.files_error.append(path)
                continue

            stem = os.path.splitext(os.path.basename(local_path))[0]
            provider_id = self.repository.create_provider(identifier=f"{stem}-{uuid.uuid4()}",
                                                          store_kind=datasource.store_kind,
                                                          path=local_path, configuration=configuration,
                                                          datasource_id=datasource.id)
            self.repository.update_path_provider(datasource.id, path, provider_id)
            for name in store.get_procedure_names():
                data_ids.append(self.repository.create_data(name, provider_id, dataset_id))
            self.repository.update_path_status(datasource.id, path, PathStatusEnum.INTEGRATED.value)
            result.files_inserted.append(path)

        self.repository.update_analysis_state(datasource.id, PathStatusEnum.COMPLETED.value)
        result.generated_data_ids.extend(data_ids)
        return data_ids

    # -- GenerateIdentities --

    def generate_identities(self, data_ids: List[int], result: HarvestResult) -> List[GeneratedSensor]:
        """Register one sensor per procedure tree of each new data"""
        sensors: List[GeneratedSensor] = []
        for data_id in data_ids:
            provider = self.repository.get_provider_for_data(data_id)
            for tree in provider.get_procedures():
                sensor_id = self._register_tree(tree, data_id)
                sensors.append(GeneratedSensor(data_id, sensor_id, tree.id))
                if tree.id not in result.generated_sensor_ids:
                    result.generated_sensor_ids.append(tree.id)
        return sensors

    def _register_tree(self, tree: ProcedureTree, data_id: int, parent_id: Optional[int] = None) -> int:
        sensor_id = self.repository.get_or_create_sensor(tree.id, tree.type, parent_id)
        self.repository.link_sensor_to_data(sensor_id, data_id)
        for child in tree.children:
            self._register_tree(child, data_id, sensor_id)
        return sensor_id

    # -- DistributeToServices --

    def _service_row_id(self, service: SensorService) -> int:
        service_id = self.repository.get_service_id(service.identifier)
        if service_id is None:
            identity = service.store_identity
            service_id = self.repository.create_service(service.identifier, service.type, host=identity.host,
                                                        database=identity.database, schema=identity.schema)
        return service_id

    def _admission_control(self, data_ids: List[int], services: List[SensorService],
                           result: HarvestResult) -> Set[Tuple[int, str]]:
        """
        Check the units of the new data against each service

        :return: the (data identifier, service identifier) pairs not to import
        """
        blocked = set()
        for data_id in data_ids:
            report = self.checker.validate(data_id, services)
            result.reports.append(report)
            if report.failure is not None:
                blocked.update((data_id, s.identifier) for s in services)
            for error in report.errors:
                blocked.add((data_id, error.service))
        if blocked:
            logger.warning(f"{len(blocked)} data/service pair(s) blocked by the compatibility check")
        return blocked

    def distribute(self, sensors: List[GeneratedSensor], services: List[SensorService], result: HarvestResult,
                   blocked: Optional[Set[Tuple[int, str]]] = None):
        """
        Link the sensors to each service and import their observations. Services
        sharing a backing store get the observations once. A sensor that fails
        to import is logged and the others go on.
        """
        blocked = blocked or set()
        treated: Set[BackingStoreIdentity] = set()

        for service in services:
            service_row_id = self._service_row_id(service)
            imported = service.store_identity in treated
            linked = False

            for sensor in sensors:
                if (sensor.data_id, service.identifier) in blocked:
                    logger.warning(f"Sensor {sensor.identifier} is not imported into service "
                                   f"{service.identifier}: incompatible units")
                    continue

                linked = self.repository.link_sensor_to_service(sensor.sensor_id, service_row_id) or linked
                for child_id in self.repository.get_sensor_children(sensor.sensor_id):
                    linked = self.repository.link_sensor_to_service(child_id, service_row_id) or linked

                if imported:
                    continue

                monitor.set_ctx_harvest_where([service.identifier, sensor.identifier])
                try:
                    provider = self.repository.get_provider_for_data(sensor.data_id)
                    extraction = provider.get_results(sensor.identifier, phenomena=service.get_phenomena(),
                                                      features=service.get_features())
                    for tree in extraction.procedures:
                        service.write_procedure(tree)
                    result.observations_inserted += service.import_observations(extraction)
                    service.restart()
                except Exception as e:
                    logger.error(f"Error while importing sensor {sensor.identifier} into service "
                                 f"{service.identifier}: {e}")
                finally:
                    monitor.set_ctx_harvest_where()

            if imported and linked:
                service.restart()
            treated.add(service.store_identity)
