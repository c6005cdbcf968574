"""
Moderation workflow: auditors and admins approve or reject pending notes;
only admins may logically delete any note.
"""
