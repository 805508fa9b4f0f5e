import datetime

from obsharvest.core.bound import SpatioTemporalBound
from obsharvest.core.extractor import ColumnMappedExtractor
from obsharvest.core.models import ProcedureTree
from obsharvest.core.schema.params import ExtractorParameters
from obsharvest.core.service import BackendDirectory, BackingStoreIdentity, SensorService
from tests.utilities import get_path, write_csv


def test_backing_store_identity():
    assert BackingStoreIdentity("localhost", "om", "public") == BackingStoreIdentity("localhost", "om", "public")
    assert BackingStoreIdentity("localhost", "om", "public") != BackingStoreIdentity("localhost", "om", "other")
    assert len({BackingStoreIdentity("h", "d"), BackingStoreIdentity("h", "d", "")}) == 1
    assert str(BackingStoreIdentity("localhost", "om", "public")) == "localhost/om/public"


def test_shared_backend(store_identity, directory):
    sos1 = SensorService("sos-1", store_identity, directory=directory)
    sos2 = SensorService("sos-2", BackingStoreIdentity("localhost", "om", "public"), directory=directory)
    sos3 = SensorService("sos-3", BackingStoreIdentity("localhost", "om", "other"), directory=directory)
    assert sos1.backend is sos2.backend
    assert sos1.backend is not sos3.backend
    assert SensorService("sos-4", store_identity).backend is not sos1.backend
    assert repr(sos1) == "<SensorService 'sos-1' localhost/om/public>"


def test_import_observations(sos_service, timeserie_parameters):
    result = ColumnMappedExtractor(get_path("timeserie.csv"), timeserie_parameters).extract()
    assert sos_service.import_observations(result) == 1

    assert [p.id for p in sos_service.get_phenomena()] == ["TEMP"]
    assert sos_service.get_features() == result.features_of_interest
    templates = sos_service.get_templates("timeserie")
    assert len(templates) == 1
    assert templates[0].is_template()
    assert sos_service.get_templates("other") == []

    # the known phenomenon and feature are reused by the next extraction
    again = ColumnMappedExtractor(get_path("timeserie.csv"), timeserie_parameters) \
        .extract(phenomena=sos_service.get_phenomena(), features=sos_service.get_features())
    sos_service.import_observations(again)
    assert len(sos_service.get_phenomena()) == 1
    assert len(sos_service.get_features()) == 1
    assert len(sos_service.backend.observations) == 2
    assert len(sos_service.get_templates("timeserie")) == 1


def test_template_new_fields(tmp_path, sos_service):
    """Fields new to a procedure are added to its template, known fields keep their unit"""
    first = write_csv(tmp_path, "first.csv", "DATE,TEMP (Cel)\n2021-03-01T10:00:00Z,1\n")
    second = write_csv(tmp_path, "second.csv", "DATE,TEMP (degF),PSAL\n2021-03-01T11:00:00Z,34,35\n")
    parameters = ExtractorParameters(main_column="DATE", procedure_id="sensor-1", extract_uom=True,
                                     measure_columns=["TEMP (Cel)", "TEMP (degF)", "PSAL"])
    sos_service.import_observations(ColumnMappedExtractor(first, parameters).extract())
    sos_service.import_observations(ColumnMappedExtractor(second, parameters).extract())

    template = sos_service.get_templates("sensor-1")[0]
    assert [(f.name, f.uom) for f in template.result_structure.fields] == [("time", None), ("TEMP", "Cel"),
                                                                          ("PSAL", None)]
    assert template.phenomenon.field_names() == ["TEMP", "PSAL"]


def test_write_procedure(sos_service):
    b1 = SpatioTemporalBound()
    b1.add_date(datetime.datetime(2021, 3, 1))
    b2 = SpatioTemporalBound()
    b2.add_date(datetime.datetime(2021, 3, 5))
    b2.add_position(5.0, 43.0)

    sos_service.write_procedure(ProcedureTree(id="sensor-1", measured_fields=["TEMP"], spatial_bound=b1))
    sos_service.write_procedure(ProcedureTree(id="sensor-1", measured_fields=["TEMP", "PSAL"], spatial_bound=b2))

    procedure = sos_service.get_procedure("sensor-1")
    assert procedure.measured_fields == ["TEMP", "PSAL"]
    assert procedure.spatial_bound.min_time == datetime.datetime(2021, 3, 1)
    assert procedure.spatial_bound.max_time == datetime.datetime(2021, 3, 5)
    assert procedure.spatial_bound.has_position()
    # the written tree is not shared with the service
    assert b1.max_time == datetime.datetime(2021, 3, 1)
    assert sos_service.get_procedure("other") is None


def test_remove_procedure(sos_service, timeserie_parameters):
    result = ColumnMappedExtractor(get_path("timeserie.csv"), timeserie_parameters).extract()
    sos_service.write_procedure(result.procedures[0])
    sos_service.import_observations(result)

    assert sos_service.backend.remove_procedure("timeserie") == 1
    assert sos_service.get_procedure("timeserie") is None
    assert sos_service.get_templates("timeserie") == []
    assert sos_service.backend.observations == []


def test_restart(sos_service):
    sos_service.restart()
    sos_service.restart()
    assert sos_service.restart_count == 2
