"""

.. currentmodule:: obsharvest.monitor

:synopsis: The obsharvest monitoring module

This module holds the logging functionality of obsharvest. It supports
logging the messages and their harvest contexts

.. contents:: Contents
    :local:
    :backlinks: top

Functions
----------------
* :func:`get_logger` - Get the HarvestLogger.
* :func:`configure` - Configure logging in obsharvest



"""
from obsharvest.core.monitor import configure, get_logger

__all__ = ['configure', 'get_logger']
