"""Lambda handlers.

Each subpackage provides the handlers for one custom resource type.
"""
