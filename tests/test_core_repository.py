import pytest

from obsharvest.core.repository import HarvestRepository, RepositoryException
from obsharvest.core.schema.enum import PathStatusEnum
from obsharvest.core.schema.params import CSV_STORE_KIND
from obsharvest.core.store import ObservationProvider, ProviderLookup
from tests.utilities import get_path


@pytest.fixture
def datasource(repository):
    return repository.create_datasource("/data/campaign", CSV_STORE_KIND, format="text/csv")


def test_repository_is_provider_lookup(repository):
    assert isinstance(repository, ProviderLookup)


def test_datasource(repository, datasource):
    assert datasource.id is not None
    assert datasource.analysis_state == PathStatusEnum.PENDING.value
    assert datasource.read_mode == "LOCAL"
    assert repository.get_datasource_by_url("/data/campaign").id == datasource.id
    assert repository.get_datasource_by_url("/data/other") is None

    repository.update_analysis_state(datasource.id, PathStatusEnum.COMPLETED.value)
    assert repository.get_datasource(datasource.id).analysis_state == "COMPLETED"

    repository.delete_datasource(datasource.id)
    assert repository.get_datasource(datasource.id) is None
    pytest.raises(RepositoryException, repository.update_analysis_state, datasource.id, "COMPLETED")


def test_update_datasource(repository, datasource):
    updated = repository.update_datasource(datasource.id, CSV_STORE_KIND, format="text/plain", read_mode="REMOTE",
                                           username="jdoe", pwd="secret")
    assert updated.id == datasource.id

    datasource = repository.get_datasource_by_url("/data/campaign")
    assert (datasource.format, datasource.read_mode) == ("text/plain", "REMOTE")
    assert (datasource.username, datasource.pwd) == ("jdoe", "secret")

    pytest.raises(RepositoryException, repository.update_datasource, datasource.id + 1, CSV_STORE_KIND)


def test_datasource_url_unique(repository, datasource):
    """A database error is rolled back and raised as a RepositoryException"""
    pytest.raises(RepositoryException, repository.create_datasource, "/data/campaign", CSV_STORE_KIND)
    assert repository.get_datasource_by_url("/data/campaign").id == datasource.id


def test_selected_paths(repository, datasource):
    assert repository.add_selected_path(datasource.id, "/data/campaign/b.csv")
    assert repository.add_selected_path(datasource.id, "/data/campaign/a.csv")
    assert not repository.add_selected_path(datasource.id, "/data/campaign/a.csv")

    paths = repository.get_selected_paths(datasource.id)
    assert [p.path for p in paths] == ["/data/campaign/a.csv", "/data/campaign/b.csv"]
    assert {p.status for p in paths} == {"PENDING"}

    repository.update_path_status(datasource.id, "/data/campaign/a.csv", PathStatusEnum.INTEGRATED.value)
    repository.update_path_provider(datasource.id, "/data/campaign/a.csv", 12)
    selected = repository.get_selected_path(datasource.id, "/data/campaign/a.csv")
    assert selected.status == "INTEGRATED"
    assert selected.provider_id == 12
    assert repository.get_provider_ids(datasource.id) == [12]

    pytest.raises(RepositoryException, repository.update_path_status, datasource.id, "/nowhere.csv", "ERROR")

    repository.delete_path(datasource.id, "/data/campaign/a.csv")
    assert [p.path for p in repository.get_selected_paths(datasource.id)] == ["/data/campaign/b.csv"]
    repository.clear_selected_paths(datasource.id)
    assert repository.get_selected_paths(datasource.id) == []


def test_provider_and_data(repository, datasource):
    configuration = {"main_column": "DATE", "measure_columns": ["TEMP"], "latitude_column": "LAT",
                     "longitude_column": "LON"}
    provider_id = repository.create_provider("timeserie-1", CSV_STORE_KIND, get_path("timeserie.csv"),
                                             configuration, datasource.id)
    dataset_id = repository.get_or_create_dataset("campaign-2021")
    assert repository.get_or_create_dataset("campaign-2021") == dataset_id

    data_id = repository.create_data("timeserie", provider_id, dataset_id)
    assert repository.get_data_ids(provider_id) == [data_id]

    provider = repository.get_provider_for_data(data_id)
    assert isinstance(provider, ObservationProvider)
    assert provider.id == provider_id
    assert provider.configuration == configuration
    assert provider.get_results().row_count() == 3

    repository.delete_provider(provider_id)
    assert repository.get_data_ids(provider_id) == []
    pytest.raises(RepositoryException, repository.get_provider, provider_id)
    pytest.raises(RepositoryException, repository.get_provider_for_data, data_id)


def test_sensors(repository, datasource):
    provider_id = repository.create_provider("p", CSV_STORE_KIND, "/data/campaign/a.csv", {}, datasource.id)
    data_id = repository.create_data("a", provider_id)

    parent_id = repository.get_or_create_sensor("a", "Component")
    assert repository.get_or_create_sensor("a", "Component") == parent_id
    child_id = repository.get_or_create_sensor("a-child", "Component", parent_id)
    assert repository.get_sensor_children(parent_id) == [child_id]
    assert repository.get_sensor_identifier(child_id) == "a-child"
    assert repository.get_sensor("a").type == "Component"

    repository.link_sensor_to_data(parent_id, data_id)
    repository.link_sensor_to_data(parent_id, data_id)
    assert repository.get_sensor_ids_for_data(data_id) == [parent_id]

    repository.delete_sensor(child_id)
    assert repository.get_sensor("a-child") is None
    pytest.raises(RepositoryException, repository.get_sensor_identifier, child_id)


def test_services(repository):
    service_id = repository.create_service("sos-1", "sos", host="localhost", database="om", schema="public")
    assert repository.get_service_id("sos-1") == service_id
    assert repository.get_service_id("sos-2") is None

    sensor_id = repository.get_or_create_sensor("a", "Component")
    assert repository.link_sensor_to_service(sensor_id, service_id)
    assert not repository.link_sensor_to_service(sensor_id, service_id)
    assert repository.get_linked_service_ids(sensor_id) == [service_id]
    assert repository.get_service_sensor_ids(service_id) == [sensor_id]

    repository.unlink_sensor_from_service(sensor_id, service_id)
    assert repository.get_linked_service_ids(sensor_id) == []


def test_default_session_factory():
    from obsharvest.core import sqlalchemy_models
    assert HarvestRepository().session_factory is sqlalchemy_models.Session


def test_default_database():
    """Without a session factory the repository works on the module in memory database"""
    from obsharvest.core.sqlalchemy_models import clear_database

    repository = HarvestRepository()
    repository.create_datasource("/data/default", CSV_STORE_KIND)
    assert repository.get_datasource_by_url("/data/default") is not None

    clear_database()
    assert repository.get_datasource_by_url("/data/default") is None
