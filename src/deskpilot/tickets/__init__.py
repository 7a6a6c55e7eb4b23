"""
Tickets Module
==============

Supporting bounded context: the ticket aggregate as stored by the
surrounding help-desk application.

Responsibilities:
- Read tickets, their conversation and organization AI settings
- Apply the few mutations the AI core is allowed to make
  (status, priority, sentiment, AI analysis fields, messages, activities)
- Audit log sink
"""

__version__ = "1.0.0"
