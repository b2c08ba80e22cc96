"""
Code Generation Module

Turns recorded sessions into Playwright scripts, project config,
CI pipelines and documentation reports.
"""

from .playwright_generator import PlaywrightCodeGenerator, spec_filename
from .cicd_generator import CICDConfigGenerator
from .report_builder import build_report

__all__ = [
    "PlaywrightCodeGenerator",
    "CICDConfigGenerator",
    "spec_filename",
    "build_report"
]
