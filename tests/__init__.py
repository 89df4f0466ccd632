"""
Test Suite Initialization

Mnemosyne test configuration.
"""
