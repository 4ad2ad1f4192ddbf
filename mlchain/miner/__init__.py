# MIT License
# Copyright (c) 2025 Hashborn

from .orchestrator import MiningAttempt, MiningOrchestrator, default_operations

__all__ = ["MiningOrchestrator", "MiningAttempt", "default_operations"]
