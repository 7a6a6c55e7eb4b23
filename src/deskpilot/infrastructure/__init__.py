"""
Infrastructure Layer
=====================

Technical adapters shared by the bounded contexts:
- Database engine and session management
- Model provider clients
"""
