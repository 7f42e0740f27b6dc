"""
Cafe ordering REST API.
"""
