# Shared Tools
"""
Collaborator implementations: persistence, storage, text extraction
and event publication.
"""

from payslips.shared.tools.memory import InMemoryPayslipRepository

__all__ = [
    "InMemoryPayslipRepository",
]
