"""`Custom::ContainerImage` resource handlers.

Mirrors a container image (or a whole multi-architecture index) into an
Amazon ECR repository.
"""
