"""

.. currentmodule:: obsharvest.core.monitor

:synopsis: The obsharvest monitoring module

This module holds the logging functionality of obsharvest. It supports
logging the messages and their harvest contexts (which harvest run and
which file, sensor or service the message is about).

.. contents:: Contents
    :local:
    :backlinks: top

"""
import contextvars
import logging
import os
import uuid
from functools import wraps
from logging import config
from typing import Any, Callable, Dict, List, Optional, Union

import yaml

LOGGER_NAME = __name__
BASE_PATH = os.path.dirname(__file__)
LOG_CONFIG_PATH = os.path.join(BASE_PATH, "logging.yaml")

#: A unique identifier for a single harvest or check run. Use this
#: If you want to identify log records from a single run
#: This is a Context variable which is natively supported in asyncio
#: and are ready to be used without any extra configuration.
harvest_id: contextvars.ContextVar = contextvars.ContextVar('harvest_id')

#: The place in the pipeline a record comes from (a file path, a sensor id,
#: a service identifier).
harvest_where: contextvars.ContextVar = contextvars.ContextVar('harvest_where')


class HarvestLogger(logging.Logger):
    """
    Custom logger for adding realtime context information (harvest_id, harvest_where)
    """

    def info(self, msg, *args, **kwargs):
        kwargs = self._add_extra(**kwargs)
        super().info(msg, *args, **kwargs)

    def error(self, msg, *args, **kwargs):
        kwargs = self._add_extra(**kwargs)
        super().error(msg, *args, **kwargs)

    def debug(self, msg, *args, **kwargs):
        kwargs = self._add_extra(**kwargs)
        super().debug(msg, *args, **kwargs)

    def warning(self, msg, *args, **kwargs):
        kwargs = self._add_extra(**kwargs)
        super().warning(msg, *args, **kwargs)

    def critical(self, msg, *args, **kwargs):
        kwargs = self._add_extra(**kwargs)
        super().critical(msg, *args, **kwargs)

    def log(self, level, msg, *args, **kwargs):
        kwargs = self._add_extra(**kwargs)
        super().log(level, msg, *args, **kwargs)

    def _add_extra(self, **kwargs):
        """Add the harvest extra, if exists """

        kwargs.setdefault('extra', dict())
        if "harvest_where" not in kwargs['extra']:
            try:
                kwargs['extra']["harvest_where"] = harvest_where.get() or "*"
            except LookupError:
                kwargs['extra']["harvest_where"] = "*"

        try:
            kwargs['extra']["harvest_id"] = harvest_id.get() or "*"
        except LookupError:
            kwargs['extra']["harvest_id"] = "*"

        return kwargs


def get_logger(name: str = None) -> logging.Logger:
    """
    Get the obsharvest logger for the specified name. Using this
    logger provides additional context for a harvest run.


    See :func:`logging.getLogger`

    :param: Name of the logger

    :return: The HarvestLogger object
    """
    logging.setLoggerClass(HarvestLogger)
    logger = logging.getLogger(name)

    return logger


def get_ctx_harvest_id() -> Any:
    """
    Get the context for the monitoring harvest_id
    :return:
    """
    try:
        return harvest_id.get()
    except LookupError:
        pass

    return None


def set_ctx_harvest_id() -> Any:
    """
    Set the context for the monitoring harvest_id.
    """
    return harvest_id.set(str(uuid.uuid1())[:8])


def get_ctx_harvest_where() -> Any:
    """
    Get the context for the monitoring harvest_where.
    """
    try:
        return harvest_where.get()
    except LookupError:
        pass

    return None


def set_ctx_harvest_where(where: Optional[Union[List, str]] = None) -> Union[Any, None]:
    """
    Set the context for the monitoring harvest_where.
    :param where: a string or a list of path elements joined with "."
    """

    if isinstance(where, list):
        return harvest_where.set(".".join(where))
    else:
        return harvest_where.set(where)


def ctx_harvest(func) -> Callable:
    """
    Decorator for setting harvest id context

    :return: func
    """

    # Use of wraps makes sure that stack traces show the original
    # function name and not the wrapped one.
    @wraps(func)
    def func_wrapper(*args, **kwargs):

        h_token = set_ctx_harvest_id()
        hw_token = set_ctx_harvest_where()
        try:
            result = func(*args, **kwargs)
        finally:
            harvest_id.reset(h_token)
            harvest_where.reset(hw_token)
        return result
    return func_wrapper


def configure(log_config_path: str = None, **kwargs) -> Dict:
    """
    Load YAML python logging configuration file

    :param log_config_path: Path to the YAML file for configuring Python logging
    :returns: Logging configuration as dictionary

    **Keyword Args**
    Overwrite default logging config.

    + filters (dict)
    + formatters (dict)
    + handlers (dict)
    + loggers (dict)

    """
    logging.setLoggerClass(HarvestLogger)
    log_config_path = log_config_path or LOG_CONFIG_PATH
    with open(f"{log_config_path}", "r") as f:
        # Expand any environment variables
        config_str = os.path.expandvars(f.read())

        config_file: Dict = yaml.load(config_str, Loader=yaml.SafeLoader)
        config_file = _overwrite_config(config_file, config_overwrite=kwargs)
        config.dictConfig(config_file)

    return config_file


def _overwrite_config(config: Dict, config_overwrite: Dict) -> Dict:
    """
    Overwrite the config with the specified values
    :param config: The config to overwrite
    :param config_overwrite:
    :return:
    """

    if config_overwrite:
        for key, value in config_overwrite.items():
            if key not in config.keys():
                config[key] = value
            else:
                if isinstance(value, dict):
                    _overwrite_config(config[key], config_overwrite[key])
                elif isinstance(value, (str, list)):
                    config[key] = value
                else:
                    raise Exception(f"Invalid config parameter {key}={value}. It must be a dict or string")

    return config
