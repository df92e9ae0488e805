"""Bulk export/import of DynamoDB tables to portable JSON documents."""

__version__ = "0.1.0"
