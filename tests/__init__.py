"""
Test suite for Custom Design Fulfillment.

Run all tests: pytest
Run unit tests only: pytest tests/unit/
Run specific file: pytest tests/unit/test_fulfillment_service.py -v
"""
