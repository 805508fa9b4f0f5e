"""

.. currentmodule:: obsharvest.core.preview

:platform: Unix, Mac
:synopsis: Inspection of a folder before a harvest

.. contents:: Contents
    :local:
    :backlinks: top

"""
import os
from typing import List, Optional, Sequence

import pandas as pd

from obsharvest.core import monitor
from obsharvest.core.extractor import header_names
from obsharvest.core.orchestrator import HarvestException
from obsharvest.core.schema.report import HarvestPreview

logger = monitor.get_logger(__name__)

MAIN_COLUMN_HINTS = ("time", "date")
LONGITUDE_COLUMN_HINTS = ("longitude", "long")
LATITUDE_COLUMN_HINTS = ("latitude", "lat")


def _read_headers(path: str, separator: str) -> List[str]:
    try:
        frame = pd.read_csv(path, sep=separator, header=None, nrows=1, dtype=str, keep_default_na=False)
    except pd.errors.EmptyDataError:
        raise HarvestException(f"csv headers not found in {path}")
    except (OSError, ValueError) as e:
        raise HarvestException(f"problem reading csv file {path}: {e}") from e
    return header_names(frame.iloc[0])


def guess_main_column(headers: Sequence[str]) -> Optional[str]:
    """
    The first header containing one of the hints, case insensitive

    >>> guess_main_column(["ID", "DATE (yyyy-mm-dd)", "TEMP"])
    'DATE (yyyy-mm-dd)'
    """
    for header in headers:
        if any(hint in header.lower() for hint in MAIN_COLUMN_HINTS):
            return header
    return None


def _guess_coordinate(headers: Sequence[str], hints: Sequence[str]) -> Optional[str]:
    # exact names win over prefixes so that "LATITUDE" is preferred to "LAT_ERROR"
    for hint in hints:
        for header in headers:
            if header.lower() == hint:
                return header
    for hint in hints:
        for header in headers:
            if header.lower().startswith(hint):
                return header
    return None


def preview_folder(folder: str, separator: str = ",", suffix: str = "csv") -> HarvestPreview:
    """
    List the files of a folder and guess the column roles from their headers

    :param folder: a local folder
    :param separator: the column separator
    :param suffix: the file suffix, without the dot
    :return: the preview
    :raises HarvestException: the folder is not a directory, or the files do not share their headers
    """
    if not os.path.isdir(folder):
        raise HarvestException(f"The source folder {folder} does not point to a directory")

    files = sorted(name for name in os.listdir(folder)
                   if name.lower().endswith("." + suffix.lower()) and os.path.isfile(os.path.join(folder, name)))
    headers: Optional[List[str]] = None
    for name in files:
        file_headers = _read_headers(os.path.join(folder, name), separator)
        if headers is None:
            headers = file_headers
        elif file_headers != headers:
            raise HarvestException(f"Inconsistent headers in {name}: {file_headers} instead of {headers}")

    headers = headers or []
    main_column = guess_main_column(headers)
    preview = HarvestPreview(files=files, headers=headers, main_column=main_column, date_column=main_column,
                             longitude_column=_guess_coordinate(headers, LONGITUDE_COLUMN_HINTS),
                             latitude_column=_guess_coordinate(headers, LATITUDE_COLUMN_HINTS))
    logger.info(f"{len(files)} file(s) in {folder}, main column {main_column}")
    return preview
