"""
Core pipeline infrastructure.
"""
