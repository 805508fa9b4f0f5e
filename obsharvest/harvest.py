"""

.. currentmodule:: obsharvest.harvest

:synopsis: obsharvest Harvest API

Functions
----------------
* :func:`register` - Register the target sensor services and get a harvester


Classes
--------
* :class:`Harvester` - Harvest API

harvest.Harvester Functions
---------------------------

* :func:`Harvester.harvest`- Harvest a folder of sensor files into the target services
* :func:`Harvester.check`- Check the units of an integrated file against target services
* :func:`Harvester.preview`- List the files of a folder and guess their column roles

----------------------------------
"""
from typing import Any, Dict, List, Mapping, Optional, Union

from obsharvest.core import monitor
from obsharvest.core.checker import CompatibilityChecker
from obsharvest.core.orchestrator import HarvestException, HarvestOrchestrator
from obsharvest.core.preview import preview_folder
from obsharvest.core.repository import HarvestRepository
from obsharvest.core.schema.params import HarvestParameters
from obsharvest.core.schema.report import CompatibilityReport, HarvestPreview, HarvestResult
from obsharvest.core.service import BackendDirectory, BackingStoreIdentity, SensorService
from obsharvest.core.sqlalchemy_models import create_session_factory

__all__ = ['HarvestException', 'Harvester', 'register']

logger = monitor.get_logger(__name__)


def _make_service(service: Union[SensorService, Mapping[str, Any]], directory: BackendDirectory) -> SensorService:
    if isinstance(service, SensorService):
        return service
    identity = BackingStoreIdentity(host=service["host"], database=service["database"],
                                    schema=service.get("schema", ""))
    return SensorService(service["identifier"], identity, directory=directory, type=service.get("type", "sos"))


def register(services: List[Union[SensorService, Mapping[str, Any]]], database_url: Optional[str] = None):
    """
    Register the target sensor services

    >>> from obsharvest import harvest
    >>> harvester = harvest.register([{"identifier": "sos-1", "host": "localhost", "database": "om"}])
    >>> harvester.services
    [<SensorService 'sos-1' localhost/om/>]

    :param services: the services, or mappings with an identifier, a host, a database and optionally a schema
    :param database_url: the SQLAlchemy URL of the harvest bookkeeping, an in memory database if None
    :return: Harvester
    """
    if not services:
        raise HarvestException("There are no services to register")

    directory = BackendDirectory()
    registered: Dict[str, SensorService] = {}
    for service in services:
        service = _make_service(service, directory)
        registered[service.identifier] = service
        logger.info("Registering Service = {}".format(service.identifier))

    session_factory = create_session_factory(database_url) if database_url else None
    return Harvester(list(registered.values()), HarvestRepository(session_factory))


class Harvester:
    """
    Harvest API
    """

    def __init__(self, services: List[SensorService], repository: HarvestRepository):
        self._services = {s.identifier: s for s in services}
        self._repository = repository
        self._checker = CompatibilityChecker(repository)
        self._orchestrator = HarvestOrchestrator(repository, services, checker=self._checker)

    @property
    def services(self) -> List[SensorService]:
        """
        The services loaded in this harvester
        :return:
        """
        return list(self._services.values())

    @property
    def repository(self) -> HarvestRepository:
        return self._repository

    def harvest(self, parameters: Union[HarvestParameters, Mapping[str, Any], str] = None, **kwargs) -> HarvestResult:
        """
        Harvest a folder of sensor files into the target services.

        Files already integrated by a previous harvest of the same folder are
        not integrated again.

        :param parameters: :class:`obsharvest.core.schema.params.HarvestParameters`, a mapping of them,
            or the path of a YAML file holding them
        :param kwargs: the parameters as keyword arguments
        :return: :class:`obsharvest.core.schema.report.HarvestResult`
        """
        if isinstance(parameters, str):
            parameters = HarvestParameters.from_yaml(parameters)
        elif parameters is None:
            parameters = HarvestParameters(**kwargs)
        elif not isinstance(parameters, HarvestParameters):
            parameters = HarvestParameters(**parameters)

        if not parameters.service_ids:
            parameters = parameters.model_copy(update={"service_ids": list(self._services.keys())})
        return self._orchestrator.run(parameters)

    def check(self, data_id: int, service_ids: Optional[List[str]] = None,
              file_name: Optional[str] = None) -> CompatibilityReport:
        """
        Check the units of an integrated file against target services. Nothing is written.

        :param data_id: the data identifier of the file, see :attr:`HarvestResult.generated_data_ids`
        :param service_ids: the target services, all of them if None
        :param file_name: the file name of the report
        :return: :class:`obsharvest.core.schema.report.CompatibilityReport`
        """
        services = self._orchestrator.resolve_services(service_ids or list(self._services.keys()))
        return self._checker.validate(data_id, services, file_name=file_name)

    def preview(self, folder: str, separator: str = ",", suffix: str = "csv") -> HarvestPreview:
        """
        List the files of a folder and guess their column roles from the shared headers

        :return: :class:`obsharvest.core.schema.report.HarvestPreview`
        """
        return preview_folder(folder, separator=separator, suffix=suffix)
