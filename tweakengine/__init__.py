"""
Tweak Engine

Template-driven system optimization engine.
Analyzes, applies and rolls back declarative system tweaks and records
a reversible per-entry history in the template itself.
"""

__version__ = "1.0.0"
__author__ = "Tweak Engine Team"
