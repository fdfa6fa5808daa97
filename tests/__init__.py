"""
Test Suite Initialization

Quarry test package.
"""
