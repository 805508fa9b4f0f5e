"""

.. currentmodule:: obsharvest.core.access

:platform: Unix, Mac
:synopsis: Access to remote datasources

A remote datasource is an HTTP folder listing. Its files are either read in
place or downloaded into a local folder before extraction.

.. contents:: Contents
    :local:
    :backlinks: top

"""
import os
import re
from typing import List, Optional, Tuple
from urllib.parse import unquote, urljoin, urlparse

import requests

from obsharvest.core import monitor

logger = monitor.get_logger(__name__)

_HREF = re.compile(r'href="([^"?#]+)"', re.IGNORECASE)


class AccessException(Exception):
    """The exception class for remote access"""
    pass


def is_remote(location: str) -> bool:
    return urlparse(location).scheme in ("http", "https")


def get_url(url, params=None, headers=None, verify=True, **kwargs):
    """
    Send a GET request to the specified URL.  Note look up extra
    `kwargs` in `requests.get`
    :param url:
    :param params: request parameters
    :param headers: request headers
    :param verify: verify SSL connection
    :return: Response
    """
    response = requests.get(url, params=params, verify=verify, headers=headers, **kwargs)
    logger.info("url:{}".format(response.url))
    return response


def _auth(user: Optional[str], password: Optional[str]) -> Optional[Tuple[str, str]]:
    return (user, password or "") if user else None


def list_remote_files(url: str, suffix: str, user: Optional[str] = None,
                      password: Optional[str] = None) -> List[str]:
    """
    List the files of a remote folder with the given suffix

    :param url: the folder URL
    :param suffix: the file suffix, without the dot
    :return: the absolute file URLs, sorted
    """
    try:
        response = get_url(url, auth=_auth(user, password))
    except requests.RequestException as e:
        raise AccessException(f"Could not list remote folder {url}: {e}") from e
    if response.status_code != 200:
        raise AccessException(f"Could not list remote folder {url} (status {response.status_code})")

    folder = url if url.endswith("/") else url + "/"
    files = set()
    for href in _HREF.findall(response.text):
        if href.lower().endswith("." + suffix.lower()):
            files.add(urljoin(folder, href))
    return sorted(files)


def download_file(url: str, folder: str, user: Optional[str] = None, password: Optional[str] = None) -> str:
    """
    Download a remote file into a local folder

    :param url: the file URL
    :param folder: the local folder
    :return: the local file path
    """
    try:
        response = get_url(url, auth=_auth(user, password), stream=True)
    except requests.RequestException as e:
        raise AccessException(f"Could not download {url}: {e}") from e
    if response.status_code != 200:
        raise AccessException(f"Could not download {url} (status {response.status_code})")

    path = os.path.join(folder, unquote(os.path.basename(urlparse(url).path)))
    with open(path, "wb") as f:
        for chunk in response.iter_content(chunk_size=65536):
            f.write(chunk)
    logger.debug(f"Downloaded {url} to {path}")
    return path
