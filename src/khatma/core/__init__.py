"""
Core subsystem.

Components:
- models.py: records, tagged unit state and the transition function
- errors.py: error taxonomy reported to callers
- ports.py: storage and identity Protocols
- auth.py: session + store-backed identity gate
- service.py: claim/unclaim/done/override and project operations
"""
