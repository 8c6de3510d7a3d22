"""
External collaborators: catalog API transport and notifications.
"""
