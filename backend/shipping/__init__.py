"""
Shipping orchestration service.
"""
