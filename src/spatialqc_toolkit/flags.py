#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Outcome flags of the spatial quality control checks.
"""

from enum import Enum


class Flag(Enum):
    """
    Result of a QC test for one observation.

    A flag is a result, not an error: every station gets exactly one flag
    per check call.
    """

    #: The observation passed the test with no issues.
    PASS = "pass"
    #: The observation failed the test.
    FAIL = "fail"
    #: The observation did not fail, but is inside a warning threshold.
    WARN = "warn"
    #: The test could not reach a decision (e.g. a singular neighbourhood matrix).
    INCONCLUSIVE = "inconclusive"
    #: The input was invalid (e.g. non-finite elevation), the observation is not QC'ed.
    INVALID = "invalid"
    #: The observation is missing.
    DATA_MISSING = "data_missing"
    #: Not enough neighbours to evaluate the observation.
    ISOLATED = "isolated"

    def __repr__(self) -> str:
        return f"Flag.{self.name}"
