"""Shared DynamoDB utilities.

This package centralizes:
- boto3 resource configuration
- mapping botocore failures onto typed errors
- an optional app-layer retry policy (off by default)
- a thin table wrapper for scan, count, batch put and conditional put

"""
