# MIT License
# Copyright (c) 2025 Hashborn

from .client import BlockTimingSource, LedgerClient, SubmissionSink

__all__ = ["SubmissionSink", "BlockTimingSource", "LedgerClient"]
