"""
Tests for the Column-Based Product Catalog.

This package contains tests for:
- Attribute classification and temporal encoding
- Schema projection and identifier validation
- Criteria lowering
- Transactional mutations and rollback
- Product, reference and attribute reads
- Filtered queries and pagination
- Configuration, provisioning and the CLI
"""
