"""
REST API for the IdLE Engine.
"""
