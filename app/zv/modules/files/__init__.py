"""
Files module: validated uploads into object storage (avatars, product images,
report attachments) and public downloads from the public areas.
"""
