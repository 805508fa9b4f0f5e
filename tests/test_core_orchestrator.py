import logging
import os
from unittest.mock import MagicMock

import pytest

import obsharvest.core.access
from obsharvest.core.orchestrator import DatasourceLockRegistry, HarvestException, HarvestOrchestrator
from obsharvest.core.schema.enum import HarvestStateEnum, PathStatusEnum
from obsharvest.core.schema.params import HarvestParameters
from obsharvest.core.service import BackingStoreIdentity, SensorService
from tests.utilities import get_text, write_csv


def get_url_response(text=None, content=None, status=200):
    """
    Creates a get_url call for mocking with the specified return data
    """
    return type('Dummy', (object,), {
        "text": text,
        "status_code": status,
        "iter_content": lambda chunk_size=None: [content],
        "url": "/testurl"})


def _parameters(folder, **kwargs):
    values = dict(data_folder=str(folder), dataset_identifier="campaign-2021", main_column="DATE",
                  latitude_column="LAT", longitude_column="LON", measure_columns=["TEMP"],
                  service_ids=["sos-1", "sos-2"])
    values.update(kwargs)
    return HarvestParameters(**values)


@pytest.fixture
def services(store_identity, directory):
    """Two services on one backing store"""
    return [SensorService("sos-1", store_identity, directory=directory),
            SensorService("sos-2", BackingStoreIdentity("localhost", "om", "public"), directory=directory)]


@pytest.fixture
def orchestrator(repository, services):
    return HarvestOrchestrator(repository, services, lock_registry=DatasourceLockRegistry())


def test_harvest(caplog, repository, services, orchestrator, data_folder):
    with caplog.at_level(logging.INFO, logger="obsharvest"):
        result = orchestrator.run(_parameters(data_folder))

    assert result.state == HarvestStateEnum.DONE.value
    assert [os.path.basename(f) for f in result.files_inserted] == ["a.csv", "b.csv"]
    assert len(result.generated_data_ids) == 2
    assert result.generated_sensor_ids == ["a", "b"]

    # the two services share their store: the observations are imported once
    assert result.observations_inserted == 2
    assert len(services[0].backend.observations) == 2
    assert services[0].get_procedure("a").measured_fields == ["TEMP"]
    assert services[0].restart_count == 2
    assert services[1].restart_count == 1

    for service in services:
        service_id = repository.get_service_id(service.identifier)
        assert len(repository.get_service_sensor_ids(service_id)) == 2

    datasource = repository.get_datasource_by_url(str(data_folder))
    assert datasource.analysis_state == PathStatusEnum.COMPLETED.value
    assert datasource.format == 'text/csv; subtype="om"'
    assert {p.status for p in repository.get_selected_paths(datasource.id)} == {"INTEGRATED"}

    for state in HarvestStateEnum.values():
        if state != HarvestStateEnum.PURGE_PREVIOUS.value:
            assert any(m.endswith(f": {state}") for m in caplog.messages)


def test_harvest_again(repository, services, orchestrator, data_folder):
    """Files already integrated are not integrated again"""
    first = orchestrator.run(_parameters(data_folder))
    result = orchestrator.run(_parameters(data_folder))

    assert result.generated_data_ids == []
    assert result.generated_sensor_ids == []
    assert result.files_inserted == []
    assert sorted(result.files_already_inserted) == sorted(first.files_inserted)
    assert result.observations_inserted == 0
    assert len(services[0].backend.observations) == 2
    assert result.datasource_id == first.datasource_id


def test_new_file(repository, orchestrator, data_folder):
    orchestrator.run(_parameters(data_folder))
    write_csv(data_folder, "C.CSV", get_text("timeserie.csv"))
    write_csv(data_folder, "notes.txt", "not a sensor file")

    result = orchestrator.run(_parameters(data_folder))
    assert [os.path.basename(f) for f in result.files_inserted] == ["C.CSV"]
    assert result.generated_sensor_ids == ["C"]
    assert len(result.files_already_inserted) == 2


def test_distinct_stores(repository, directory, data_folder):
    services = [SensorService("sos-1", BackingStoreIdentity("localhost", "om", "public"), directory=directory),
                SensorService("sos-2", BackingStoreIdentity("remotehost", "om", "public"), directory=directory)]
    result = HarvestOrchestrator(repository, services).run(_parameters(data_folder))

    assert result.observations_inserted == 4
    assert len(services[0].backend.observations) == 2
    assert len(services[1].backend.observations) == 2
    assert services[1].restart_count == 2


def test_remove_previous_integration(repository, services, orchestrator, data_folder):
    orchestrator.run(_parameters(data_folder))

    result = orchestrator.run(_parameters(data_folder, remove_previous_integration=True))
    assert len(result.files_inserted) == 2
    assert result.files_already_inserted == []
    assert len(result.generated_data_ids) == 2
    assert result.generated_sensor_ids == ["a", "b"]

    datasource = repository.get_datasource_by_url(str(data_folder))
    provider_ids = repository.get_provider_ids(datasource.id)
    assert len(provider_ids) == 2
    assert sum(len(repository.get_data_ids(p)) for p in provider_ids) == 2
    assert result.observations_inserted == 2

    # the purged observations are not kept next to the new ones
    assert len(services[0].backend.observations) == 2
    service_id = repository.get_service_id("sos-1")
    assert len(repository.get_service_sensor_ids(service_id)) == 2


def test_file_failure_aborts(repository, orchestrator, data_folder):
    bad = write_csv(data_folder, "c.csv", "DATE,LAT,LON,TEMP\n01/03/2021,43.1,5.2,12.5\n")

    with pytest.raises(HarvestException) as exc:
        orchestrator.run(_parameters(data_folder))
    assert bad in str(exc.value)

    datasource = repository.get_datasource_by_url(str(data_folder))
    assert repository.get_selected_path(datasource.id, bad).status == PathStatusEnum.ERROR.value

    # the file in error is reported and not retried
    result = orchestrator.run(_parameters(data_folder))
    assert result.files_error == [bad]
    assert len(result.files_already_inserted) == 2


def test_no_data(repository, orchestrator, data_folder):
    empty = write_csv(data_folder, "c.csv", "DATE,LAT,LON,TEMP\n")
    result = orchestrator.run(_parameters(data_folder))

    assert result.files_error == [empty]
    assert len(result.generated_data_ids) == 2
    datasource = repository.get_datasource_by_url(str(data_folder))
    assert repository.get_selected_path(datasource.id, empty).status == PathStatusEnum.NO_DATA.value


def test_removed_path(repository, orchestrator, data_folder):
    """A harvested file that left the folder has its provider removed"""
    first = orchestrator.run(_parameters(data_folder))
    datasource = repository.get_datasource_by_url(str(data_folder))
    path = first.files_inserted[0]
    provider_id = repository.get_selected_path(datasource.id, path).provider_id
    os.remove(path)

    result = orchestrator.run(_parameters(data_folder))
    assert result.files_removed == [path]
    assert result.files_error == []
    assert len(result.files_already_inserted) == 1
    assert repository.get_selected_path(datasource.id, path) is None
    assert repository.get_data_ids(provider_id) == []

    again = orchestrator.run(_parameters(data_folder))
    assert again.files_removed == []


def test_pending_path_removed(repository, orchestrator, data_folder):
    """A selected file that disappeared before its integration does not abort the run"""
    orchestrator.run(_parameters(data_folder))
    datasource = repository.get_datasource_by_url(str(data_folder))
    missing = os.path.join(str(data_folder), "gone.csv")
    repository.add_selected_path(datasource.id, missing)

    result = orchestrator.run(_parameters(data_folder))
    assert result.state == HarvestStateEnum.DONE.value
    assert result.files_removed == [missing]
    assert repository.get_selected_path(datasource.id, missing) is None


def test_undecodable_file_aborts(repository, orchestrator, data_folder):
    bad = str(data_folder / "c.csv")
    with open(bad, "wb") as f:
        f.write(b"DATE,LAT,LON,TEMP\n2021-03-01T10:00:00Z,43.1,5.2,\xff\xfe\n")

    with pytest.raises(HarvestException) as exc:
        orchestrator.run(_parameters(data_folder))
    assert bad in str(exc.value)

    datasource = repository.get_datasource_by_url(str(data_folder))
    assert repository.get_selected_path(datasource.id, bad).status == PathStatusEnum.ERROR.value


def test_datasource_settings_follow_the_run(repository, orchestrator, data_folder):
    orchestrator.run(_parameters(data_folder))
    datasource = repository.get_datasource_by_url(str(data_folder))
    assert (datasource.read_mode, datasource.username, datasource.pwd) == ("LOCAL", None, None)

    result = orchestrator.run(_parameters(data_folder, remote_reading=True, user_name="jdoe",
                                          user_password="secret", format="text/plain",
                                          remove_previous_integration=True))
    assert result.datasource_id == datasource.id
    datasource = repository.get_datasource_by_url(str(data_folder))
    assert datasource.read_mode == "REMOTE"
    assert (datasource.username, datasource.pwd) == ("jdoe", "secret")
    assert datasource.format == "text/plain"
    assert len(result.files_inserted) == 2


def test_sensor_failure_continues(caplog, repository, directory, data_folder):
    """A sensor that fails to import does not stop the others"""

    class FailingService(SensorService):
        def import_observations(self, result):
            if result.procedures[0].id == "a":
                raise RuntimeError("backend unavailable")
            return super().import_observations(result)

    service = FailingService("sos-1", BackingStoreIdentity("localhost", "om", "public"), directory=directory)
    result = HarvestOrchestrator(repository, [service]).run(_parameters(data_folder, service_ids=["sos-1"]))

    assert result.state == HarvestStateEnum.DONE.value
    assert result.observations_inserted == 1
    assert [o.procedure for o in service.backend.observations] == ["b"]
    assert any("Error while importing sensor a into service sos-1: backend unavailable" in m
               for m in caplog.messages)


def test_unknown_service(orchestrator, data_folder):
    with pytest.raises(HarvestException) as exc:
        orchestrator.run(_parameters(data_folder, service_ids=["sos-9"]))
    assert "sos-9" in str(exc.value)


def test_not_a_directory(orchestrator, tmp_path):
    with pytest.raises(HarvestException) as exc:
        orchestrator.run(_parameters(tmp_path / "missing"))
    assert "does not point to a directory" in str(exc.value)


def test_lock_registry():
    registry = DatasourceLockRegistry()
    assert registry.get("/data") is registry.get("/data")
    assert registry.get("/data") is not registry.get("/other")

    with registry.hold("/data"):
        with pytest.raises(HarvestException):
            with registry.hold("/data", timeout=0):
                pass
        with registry.hold("/other", timeout=0):
            pass
    with registry.hold("/data", timeout=0):
        pass


def test_concurrent_harvest_refused(repository, services, data_folder):
    registry = DatasourceLockRegistry()
    orchestrator = HarvestOrchestrator(repository, services, lock_registry=registry, lock_timeout=0)
    with registry.hold(str(data_folder)):
        with pytest.raises(HarvestException) as exc:
            orchestrator.run(_parameters(data_folder))
    assert "already running" in str(exc.value)
    assert repository.get_datasource_by_url(str(data_folder)) is None


def test_compatibility_gate(tmp_path, repository, directory):
    """A file with an inconvertible unit is not imported into the service holding the other unit"""
    sos1 = SensorService("sos-1", BackingStoreIdentity("localhost", "om", "public"), directory=directory)
    sos2 = SensorService("sos-2", BackingStoreIdentity("localhost", "om", "other"), directory=directory)
    orchestrator = HarvestOrchestrator(repository, [sos1, sos2])

    first = tmp_path / "first"
    first.mkdir()
    write_csv(first, "a.csv", "DATE,TEMP (Cel)\n2021-03-01T10:00:00Z,12.5\n")
    orchestrator.run(HarvestParameters(data_folder=str(first), dataset_identifier="ds", main_column="DATE",
                                       measure_columns=["TEMP (Cel)"], extract_uom=True, service_ids=["sos-1"]))

    second = tmp_path / "second"
    second.mkdir()
    write_csv(second, "a.csv", "DATE,TEMP (bananas)\n2021-03-02T10:00:00Z,12.5\n")
    result = orchestrator.run(HarvestParameters(data_folder=str(second), dataset_identifier="ds",
                                                main_column="DATE", measure_columns=["TEMP (bananas)"],
                                                extract_uom=True, service_ids=["sos-1", "sos-2"],
                                                check_compatibility=True))

    assert len(result.reports) == 1
    assert not result.reports[0].valid
    assert [e.service for e in result.reports[0].errors] == ["sos-1"]
    assert result.observations_inserted == 1
    assert len(sos1.backend.observations) == 1
    assert len(sos2.backend.observations) == 1


def test_remote_download(monkeypatch, repository, services, tmp_path):
    """Remote files are downloaded before they are integrated"""
    listing = '<html><body><a href="a.csv">a.csv</a> <a href="notes.txt">notes</a></body></html>'
    mock_get_url = MagicMock(side_effect=[get_url_response(text=listing),
                                          get_url_response(content=get_text("timeserie.csv").encode())])
    monkeypatch.setattr(obsharvest.core.access, 'get_url', mock_get_url)

    work_folder = tmp_path / "work"
    work_folder.mkdir()
    orchestrator = HarvestOrchestrator(repository, services, work_folder=str(work_folder))
    result = orchestrator.run(_parameters("http://data.example.org/campaign/"))

    assert result.files_inserted == ["http://data.example.org/campaign/a.csv"]
    assert result.generated_sensor_ids == ["a"]
    assert os.path.exists(work_folder / "a.csv")
    assert mock_get_url.call_args_list[1].args[0] == "http://data.example.org/campaign/a.csv"


def test_remote_listing_failure(monkeypatch, repository, services):
    monkeypatch.setattr(obsharvest.core.access, 'get_url', MagicMock(return_value=get_url_response(status=404)))
    with pytest.raises(HarvestException) as exc:
        HarvestOrchestrator(repository, services).run(_parameters("http://data.example.org/campaign/"))
    assert "404" in str(exc.value)
