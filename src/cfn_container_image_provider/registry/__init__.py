"""Container registry access.

Provides image reference parsing, platform matching, a client for the
registry HTTP API v2, and the ECR specific credential and delete operations.
"""
