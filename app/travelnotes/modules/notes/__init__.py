"""
Travel notes: a title, free text, an optional location and an ordered list
of photo/video attachments. Notes are created and edited by their owner and
always (re)enter moderation as pending.
"""
