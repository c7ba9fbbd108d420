"""Test suite for the Courier delivery system."""
