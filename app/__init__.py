"""
Batch Manager
Classroom batch management backend.

Architecture:
- MongoDB: administrators, students/parents, batches with embedded announcements
- JWT bearer tokens for students, parents and administrators
"""

__version__ = "1.0.0"
