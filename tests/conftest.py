import pytest


def pytest_addoption(parser):
    """
    Add execution options to the commandline
    :param parser:
    :return:
    """

    parser.addoption(
        "--runintegration", action="store_true", default=False, help=f"run integration tests"
    )


def pytest_configure(config):
    """
    Add pytext init lines
    :param config:
    :return:
    """
    config.addinivalue_line("markers", "integration: Mark test as integration.")


def pytest_collection_modifyitems(config, items):
    """
    Modify the tests to skip integration unless specified
    :param config:
    :param items:
    :return:
    """

    # Determine if any markers need to be skipped.
    if config.getoption("--runintegration"):
        # --runintegration given in cli: do not skip integration tests
        return

    markers_skip_integration = pytest.mark.skip(reason="need --runintegration option to run")

    for item in items:
        if "integration" in item.keywords:
            item.add_marker(markers_skip_integration)


@pytest.fixture
def repository():
    """
    Create a HarvestRepository on a fresh in memory database
    """
    from obsharvest.core.repository import HarvestRepository
    from obsharvest.core.sqlalchemy_models import create_session_factory
    return HarvestRepository(create_session_factory())


@pytest.fixture
def directory():
    """
    Create the backends shared by the services of a test
    """
    from obsharvest.core.service import BackendDirectory
    return BackendDirectory()


@pytest.fixture
def store_identity():
    from obsharvest.core.service import BackingStoreIdentity
    return BackingStoreIdentity(host="localhost", database="om", schema="public")


@pytest.fixture
def sos_service(store_identity, directory):
    """
    Create a SensorService
    """
    from obsharvest.core.service import SensorService
    return SensorService("sos-1", store_identity, directory=directory)


@pytest.fixture
def timeserie_parameters():
    """
    Column roles of tests/resources/timeserie.csv
    """
    from obsharvest.core.schema.params import ExtractorParameters
    return ExtractorParameters(main_column="DATE", latitude_column="LAT", longitude_column="LON",
                               measure_columns=["TEMP"])


@pytest.fixture
def data_folder(tmp_path):
    """
    A folder with two timeserie files, a.csv and b.csv
    """
    from tests.utilities import copy_resource
    folder = tmp_path / "data"
    folder.mkdir()
    copy_resource("timeserie.csv", folder, "a.csv")
    copy_resource("timeserie.csv", folder, "b.csv")
    return folder
