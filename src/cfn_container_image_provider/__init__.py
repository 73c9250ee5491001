"""CloudFormation container image provider.

Provides the `Custom::ContainerImage` Lambda handler, which mirrors a container
image into an Amazon ECR repository, along with the registry client and the
common Lambda handler utilities it is built on.
"""
