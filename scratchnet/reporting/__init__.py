"""Reporting utilities for scratchnet."""

from .artifacts import write_manifest
from .metrics import CsvSink, JsonlSink
from .plots import PlotAdapter
from .summary import write_summary

__all__ = ["write_manifest", "write_summary", "CsvSink", "JsonlSink", "PlotAdapter"]
