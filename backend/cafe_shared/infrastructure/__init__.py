"""
Infrastructure module: Database, correlation ids, fan-out helpers.
"""
