"""
Agents Module
=============

Bounded context for the multi-agent ticket pipeline.

Responsibilities:
- Triage, resolution and quality agents over one ticket
- Auto-execution of confident resolutions, rate limited per ticket
- Human approval and rejection of proposed actions
- Learning feedback replayed into later agent prompts
"""

__version__ = "1.0.0"
