"""highlightexport: turn tagged match segments into finished highlight clips.

Trims segments out of a match video, optionally freezes a frame under a
drawn annotation, burns in a caption summarizing the tagged event,
stacks two camera angles side by side, and writes the results one file
per clip, one file per action row, or one combined file.
"""
