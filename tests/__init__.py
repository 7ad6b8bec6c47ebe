"""
Tests package - test suite for the chimera admission webhook kit.

Contains:
- unit/: Unit tests for individual components, runnable without a cluster
"""
