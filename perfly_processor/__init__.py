"""
Perfly Processor module.

This module contains the background job processor that picks up pending
performance tests, runs the analysis and records the outcome. It can run
inside the API server process or standalone via ``python -m perfly_processor``.
"""

from .processor import IDLE, MAX_RETRIES, JobProcessor

__all__ = ["IDLE", "JobProcessor", "MAX_RETRIES"]
