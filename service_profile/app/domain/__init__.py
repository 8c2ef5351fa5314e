"""
Domain package for the Profile Gateway: response schemas and the
user-with-posts orchestration.
"""
