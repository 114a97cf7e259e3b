"""
Diary Engine - Local-first parenting journal storage core

Media storage, legacy reference migration and backup/restore for the
on-device diary database and its photo attachments.
"""

__version__ = "1.2.0"
