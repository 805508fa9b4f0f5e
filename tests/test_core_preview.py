import pytest

from obsharvest.core.orchestrator import HarvestException
from obsharvest.core.preview import guess_main_column, preview_folder
from tests.utilities import copy_resource, write_csv


@pytest.mark.parametrize("headers, expected", [(["ID", "DATE (yyyy-mm-dd)", "TEMP"], "DATE (yyyy-mm-dd)"),
                                               (["Time", "Date"], "Time"),
                                               (["PRES", "TEMP"], None),
                                               ([], None)])
def test_guess_main_column(headers, expected):
    assert guess_main_column(headers) == expected


def test_preview_folder(data_folder):
    write_csv(data_folder, "notes.txt", "not a data file\n")

    preview = preview_folder(str(data_folder))
    assert preview.files == ["a.csv", "b.csv"]
    assert preview.headers == ["DATE", "LAT", "LON", "TEMP"]
    assert preview.main_column == "DATE"
    assert preview.date_column == "DATE"
    assert preview.latitude_column == "LAT"
    assert preview.longitude_column == "LON"


def test_preview_folder_separator(tmp_path):
    copy_resource("trajectory.csv", tmp_path)

    preview = preview_folder(str(tmp_path), separator=";")
    assert preview.files == ["trajectory.csv"]
    assert preview.main_column == "TIME"
    assert preview.longitude_column == "LONGITUDE"
    assert preview.latitude_column == "LATITUDE"


def test_preview_folder_prefers_exact_coordinate(tmp_path):
    write_csv(tmp_path, "a.csv", "TIME,LAT_ERROR,LATITUDE,LONG\n2021-03-01T10:00:00,0.1,43.1,5.2\n")

    preview = preview_folder(str(tmp_path))
    assert preview.latitude_column == "LATITUDE"
    assert preview.longitude_column == "LONG"


def test_preview_folder_header_whitespace(data_folder):
    write_csv(data_folder, "c.csv", " DATE, LAT ,LON,TEMP \n2021-03-01T10:00:00,43.1,5.2,12.5\n")

    preview = preview_folder(str(data_folder))
    assert preview.files == ["a.csv", "b.csv", "c.csv"]
    assert preview.headers == ["DATE", "LAT", "LON", "TEMP"]


def test_preview_folder_inconsistent_headers(data_folder):
    write_csv(data_folder, "c.csv", "DATE,LAT,LON,PSAL\n2021-03-01T10:00:00,43.1,5.2,38.1\n")

    with pytest.raises(HarvestException) as e:
        preview_folder(str(data_folder))
    assert "Inconsistent headers in c.csv" in str(e.value)


def test_preview_folder_empty_file(tmp_path):
    write_csv(tmp_path, "a.csv", "")

    with pytest.raises(HarvestException) as e:
        preview_folder(str(tmp_path))
    assert "csv headers not found" in str(e.value)


def test_preview_folder_empty(tmp_path):
    preview = preview_folder(str(tmp_path))
    assert preview.files == []
    assert preview.headers == []
    assert preview.main_column is None
    assert preview.latitude_column is None


def test_preview_folder_not_a_directory(tmp_path):
    with pytest.raises(HarvestException) as e:
        preview_folder(str(tmp_path / "missing"))
    assert "does not point to a directory" in str(e.value)
