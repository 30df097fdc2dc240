"""
Core modules for Token Savings.

This package contains aggregation, report composition and rendering.
"""
