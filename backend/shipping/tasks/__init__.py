"""
Background tasks module.
"""
