"""Common Lambda utilities and base classes.

Provides foundational components for building Lambda handlers including
the base handler class, the CloudFormation custom resource handler, logging,
metrics, configuration and invocation deadlines.
"""
