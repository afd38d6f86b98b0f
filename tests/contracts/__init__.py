"""Tests for the contracts package.

Unit tests for the shared types every other module depends on: the error
taxonomy, the closed enums, and batch results. These tests pin interface
guarantees (hierarchy, attributes, string values), not implementation.
"""
