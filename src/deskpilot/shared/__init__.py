"""
Shared Kernel Module
====================

Shared infrastructure used across all bounded contexts (tickets, privacy,
agents, assistant): structured logging, metrics export and HTTP middleware.

DO NOT add business logic from a bounded context to the shared kernel.
"""

__version__ = "1.0.0"
