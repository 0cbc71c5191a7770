#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Logging helpers for the spatialqc_toolkit.

All modules log to the "<spatialqc_toolkit>" logger. Handlers can be added
by the user with add_FileHandler and add_StreamHandler.
"""

import os
import logging
import functools
from datetime import datetime

logger = logging.getLogger("<spatialqc_toolkit>")


def log_entry(func):
    """Decorator that writes a debug line each time the function is called."""

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        logger.debug(f"Entering {func.__name__}() ({func.__module__})")
        return func(*args, **kwargs)

    return wrapper


def add_FileHandler(trglogfile, setlvl="DEBUG", clearlog=True):
    """Write the toolkit logs to a file.

    Parameters
    ----------
    trglogfile : str or Path
        Path of the target logfile.
    setlvl : str, optional
        Level of the handler. The default is "DEBUG".
    clearlog : bool, optional
        If True, an existing logfile is removed first. The default is True.

    Returns
    -------
    None.
    """
    if clearlog:
        if os.path.isfile(trglogfile):
            os.remove(trglogfile)

    file_handler = logging.FileHandler(filename=trglogfile)
    file_handler.setLevel(setlvl.upper())
    file_logger_formatter = logging.Formatter("%(name)s - %(levelname)s - %(message)s")
    file_handler.setFormatter(file_logger_formatter)

    rootlog = logging.getLogger("<spatialqc_toolkit>")
    rootlog.addHandler(file_handler)

    rootlog.info(f"FileHandler set at {datetime.now()}")


def add_StreamHandler(setlvl="DEBUG"):
    """Print the toolkit logs to the console.

    Parameters
    ----------
    setlvl : str, optional
        Level of the handler. The default is "DEBUG".

    Returns
    -------
    None.
    """
    streamhandler = logging.StreamHandler()
    streamhandler.setLevel(setlvl.upper())
    stream_logger_formatter = logging.Formatter(
        "LOG:: %(name)s - %(levelname)s - %(message)s"
    )
    streamhandler.setFormatter(stream_logger_formatter)

    rootlog = logging.getLogger("<spatialqc_toolkit>")
    rootlog.addHandler(streamhandler)

    rootlog.info(f"StreamHandler set at {datetime.now()}")
