"""

.. currentmodule:: obsharvest.core.repository

:platform: Unix, Mac
:synopsis: Harvest bookkeeping repository

Datasources, their selected paths, providers, data, datasets, sensors and
services. One session per operation.

.. contents:: Contents
    :local:
    :backlinks: top

"""
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from obsharvest.core import monitor, sqlalchemy_models
from obsharvest.core.schema.enum import PathStatusEnum, ReadModeEnum
from obsharvest.core.sqlalchemy_models import Data, DataSource, DataSourceSelectedPath, Dataset, Provider, \
    Sensor, Service
from obsharvest.core.store import ObservationProvider, ProviderLookup

logger = monitor.get_logger(__name__)
"""The logger for the repository"""


class RepositoryException(Exception):
    """The exception class for the repository"""
    pass


class HarvestRepository(ProviderLookup):
    """
    SQLAlchemy repository of the harvest bookkeeping. It resolves providers
    for the components it is given to.
    """

    def __init__(self, session_factory=None):
        """
        :param session_factory: a SQLAlchemy session factory. Defaults to the in memory database.
        """
        self.session_factory = session_factory or sqlalchemy_models.Session

    @contextmanager
    def _session(self) -> Iterator[Any]:
        session = self.session_factory()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"Harvest repository error: {e}")
            raise RepositoryException(str(e)) from e
        finally:
            session.close()

    # -- datasources --

    def get_datasource_by_url(self, url: str) -> Optional[DataSource]:
        with self._session() as session:
            return session.query(DataSource).filter_by(url=url).one_or_none()

    def get_datasource(self, datasource_id: int) -> Optional[DataSource]:
        with self._session() as session:
            return session.get(DataSource, datasource_id)

    def create_datasource(self, url: str, store_kind: str, format: Optional[str] = None,
                          read_mode: str = ReadModeEnum.LOCAL.value, username: Optional[str] = None,
                          pwd: Optional[str] = None) -> DataSource:
        with self._session() as session:
            datasource = DataSource(url=url, store_kind=store_kind, format=format, read_mode=read_mode,
                                    username=username, pwd=pwd, analysis_state=PathStatusEnum.PENDING.value)
            session.add(datasource)
            session.flush()
            logger.info(f"Created datasource {datasource.id} for {url}")
            return datasource

    def update_datasource(self, datasource_id: int, store_kind: str, format: Optional[str] = None,
                          read_mode: str = ReadModeEnum.LOCAL.value, username: Optional[str] = None,
                          pwd: Optional[str] = None) -> DataSource:
        """Set the access settings of a datasource"""
        with self._session() as session:
            datasource = session.get(DataSource, datasource_id)
            if datasource is None:
                raise RepositoryException(f"No datasource {datasource_id}")
            datasource.store_kind = store_kind
            datasource.format = format
            datasource.read_mode = read_mode
            datasource.username = username
            datasource.pwd = pwd
            return datasource

    def update_analysis_state(self, datasource_id: int, state: str):
        with self._session() as session:
            datasource = session.get(DataSource, datasource_id)
            if datasource is None:
                raise RepositoryException(f"No datasource {datasource_id}")
            datasource.analysis_state = state

    def delete_datasource(self, datasource_id: int):
        with self._session() as session:
            datasource = session.get(DataSource, datasource_id)
            if datasource is not None:
                session.delete(datasource)

    # -- selected paths --

    def get_selected_paths(self, datasource_id: int) -> List[DataSourceSelectedPath]:
        with self._session() as session:
            return session.query(DataSourceSelectedPath).filter_by(datasource_id=datasource_id) \
                .order_by(DataSourceSelectedPath.path).all()

    def get_selected_path(self, datasource_id: int, path: str) -> Optional[DataSourceSelectedPath]:
        with self._session() as session:
            return session.query(DataSourceSelectedPath).filter_by(datasource_id=datasource_id, path=path) \
                .one_or_none()

    def add_selected_path(self, datasource_id: int, path: str) -> bool:
        """
        Register a path, if not already registered

        :return: True if the path was added
        """
        with self._session() as session:
            existing = session.query(DataSourceSelectedPath).filter_by(datasource_id=datasource_id, path=path) \
                .one_or_none()
            if existing is not None:
                return False
            session.add(DataSourceSelectedPath(datasource_id=datasource_id, path=path,
                                               status=PathStatusEnum.PENDING.value))
            return True

    def _update_path(self, datasource_id: int, path: str, **values):
        with self._session() as session:
            selected = session.query(DataSourceSelectedPath).filter_by(datasource_id=datasource_id, path=path) \
                .one_or_none()
            if selected is None:
                raise RepositoryException(f"Path {path} is not selected in datasource {datasource_id}")
            for key, value in values.items():
                setattr(selected, key, value)

    def update_path_status(self, datasource_id: int, path: str, status: str):
        self._update_path(datasource_id, path, status=status)

    def update_path_provider(self, datasource_id: int, path: str, provider_id: Optional[int]):
        self._update_path(datasource_id, path, provider_id=provider_id)

    def delete_path(self, datasource_id: int, path: str):
        with self._session() as session:
            session.query(DataSourceSelectedPath).filter_by(datasource_id=datasource_id, path=path).delete()

    def clear_selected_paths(self, datasource_id: int):
        with self._session() as session:
            session.query(DataSourceSelectedPath).filter_by(datasource_id=datasource_id).delete()

    # -- providers and data --

    def create_provider(self, identifier: str, store_kind: str, path: str, configuration: Dict[str, Any],
                        datasource_id: Optional[int] = None) -> int:
        with self._session() as session:
            provider = Provider(identifier=identifier, store_kind=store_kind, path=path,
                                configuration=configuration, datasource_id=datasource_id)
            session.add(provider)
            session.flush()
            return provider.id

    def delete_provider(self, provider_id: int):
        """Delete a provider and its data"""
        with self._session() as session:
            provider = session.get(Provider, provider_id)
            if provider is not None:
                session.delete(provider)
                logger.info(f"Deleted provider {provider.identifier}")

    def get_provider(self, provider_id: int) -> ObservationProvider:
        with self._session() as session:
            provider = session.get(Provider, provider_id)
            if provider is None:
                raise RepositoryException(f"No provider {provider_id}")
            return ObservationProvider(provider.id, provider.store_kind, provider.path, dict(provider.configuration))

    def get_provider_for_data(self, data_id: int) -> ObservationProvider:
        with self._session() as session:
            data = session.get(Data, data_id)
            if data is None:
                raise RepositoryException(f"No data {data_id}")
            provider_id = data.provider_id
        return self.get_provider(provider_id)

    def get_provider_ids(self, datasource_id: int) -> List[int]:
        """The providers of the selected paths of a datasource"""
        with self._session() as session:
            rows = session.query(DataSourceSelectedPath.provider_id) \
                .filter(DataSourceSelectedPath.datasource_id == datasource_id,
                        DataSourceSelectedPath.provider_id.isnot(None)).all()
            return [row[0] for row in rows]

    def create_data(self, name: str, provider_id: int, dataset_id: Optional[int] = None) -> int:
        with self._session() as session:
            data = Data(name=name, provider_id=provider_id, dataset_id=dataset_id)
            session.add(data)
            session.flush()
            return data.id

    def get_data_ids(self, provider_id: int) -> List[int]:
        with self._session() as session:
            return [row[0] for row in session.query(Data.id).filter_by(provider_id=provider_id).all()]

    def get_or_create_dataset(self, identifier: str) -> int:
        with self._session() as session:
            dataset = session.query(Dataset).filter_by(identifier=identifier).one_or_none()
            if dataset is None:
                dataset = Dataset(identifier=identifier)
                session.add(dataset)
                session.flush()
            return dataset.id

    # -- sensors --

    def get_sensor(self, identifier: str) -> Optional[Sensor]:
        with self._session() as session:
            return session.query(Sensor).filter_by(identifier=identifier).one_or_none()

    def get_or_create_sensor(self, identifier: str, type: str, parent_id: Optional[int] = None) -> int:
        with self._session() as session:
            sensor = session.query(Sensor).filter_by(identifier=identifier).one_or_none()
            if sensor is None:
                sensor = Sensor(identifier=identifier, type=type, parent_id=parent_id)
                session.add(sensor)
                session.flush()
                logger.info(f"Created sensor {identifier}")
            return sensor.id

    def get_sensor_identifier(self, sensor_id: int) -> str:
        with self._session() as session:
            sensor = session.get(Sensor, sensor_id)
            if sensor is None:
                raise RepositoryException(f"No sensor {sensor_id}")
            return sensor.identifier

    def get_sensor_children(self, sensor_id: int) -> List[int]:
        with self._session() as session:
            return [row[0] for row in session.query(Sensor.id).filter_by(parent_id=sensor_id).all()]

    def link_sensor_to_data(self, sensor_id: int, data_id: int):
        with self._session() as session:
            sensor = session.get(Sensor, sensor_id)
            data = session.get(Data, data_id)
            if data not in sensor.data:
                sensor.data.append(data)

    def get_sensor_ids_for_data(self, data_id: int) -> List[int]:
        with self._session() as session:
            data = session.get(Data, data_id)
            return [] if data is None else [sensor.id for sensor in data.sensors]

    def delete_sensor(self, sensor_id: int):
        with self._session() as session:
            sensor = session.get(Sensor, sensor_id)
            if sensor is not None:
                session.delete(sensor)
                logger.info(f"Deleted sensor {sensor.identifier}")

    # -- services --

    def create_service(self, identifier: str, type: str, host: Optional[str] = None,
                       database: Optional[str] = None, schema: Optional[str] = None) -> int:
        with self._session() as session:
            service = Service(identifier=identifier, type=type, host=host, database=database, schema=schema)
            session.add(service)
            session.flush()
            return service.id

    def get_service_id(self, identifier: str) -> Optional[int]:
        with self._session() as session:
            service = session.query(Service).filter_by(identifier=identifier).one_or_none()
            return None if service is None else service.id

    def link_sensor_to_service(self, sensor_id: int, service_id: int) -> bool:
        """
        Link a sensor to a service, if not already linked

        :return: True if the link was added
        """
        with self._session() as session:
            sensor = session.get(Sensor, sensor_id)
            service = session.get(Service, service_id)
            if service in sensor.services:
                return False
            sensor.services.append(service)
            return True

    def unlink_sensor_from_service(self, sensor_id: int, service_id: int):
        with self._session() as session:
            sensor = session.get(Sensor, sensor_id)
            service = session.get(Service, service_id)
            if service in sensor.services:
                sensor.services.remove(service)

    def get_linked_service_ids(self, sensor_id: int) -> List[int]:
        with self._session() as session:
            sensor = session.get(Sensor, sensor_id)
            return [] if sensor is None else [service.id for service in sensor.services]

    def get_service_sensor_ids(self, service_id: int) -> List[int]:
        with self._session() as session:
            service = session.get(Service, service_id)
            return [] if service is None else [sensor.id for sensor in service.sensors]
