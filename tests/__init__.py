"""Test suite for the column-based product catalog."""
