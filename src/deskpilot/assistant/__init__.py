"""
Assistant Module
================

Bounded context for the assistive AI features of the ticket view.

Responsibilities:
- Reply suggestions, sentiment, priority, translation, summaries and
  help-article suggestions
- Every feature passes the organization's flags and the consent gate
"""

__version__ = "1.0.0"
