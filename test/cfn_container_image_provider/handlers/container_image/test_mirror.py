from test.base import BaseTest
from test.cfn_container_image_provider.fake_registry import (
    FakeRegistry,
    FakeRegistrySession,
    sha256,
)
from unittest import mock

from cfn_container_image_provider.exceptions import (
    Cancelled,
    PlatformNotFound,
    RegistryError,
    SourceFetchFailed,
    TargetPushFailed,
)
from cfn_container_image_provider.handlers.container_image.mirror import MirrorExecutor
from cfn_container_image_provider.handlers.container_image.model import ContainerImageProperties
from cfn_container_image_provider.registry.client import RemoteRegistryClient
from cfn_container_image_provider.registry.model import Credential

SOURCE_HOST = "registry-1.docker.io"
TARGET_HOST = "444093529715.dkr.ecr.eu-central-1.amazonaws.com"
DEMO_ARN = "arn:aws:ecr:eu-central-1:444093529715:repository/demo"


def mirror_request(image_reference: str, platform=None) -> ContainerImageProperties:
    properties = {"ImageReference": image_reference, "RepositoryArn": DEMO_ARN}
    if platform is not None:
        properties["Platform"] = platform
    return ContainerImageProperties.from_resource_properties(properties)


class MirrorExecutorTests(BaseTest):
    def setUp(self) -> None:
        super().setUp()
        self.source = FakeRegistry(auth="bearer")
        self.target = FakeRegistry(auth="basic")
        self.session = FakeRegistrySession({SOURCE_HOST: self.source, TARGET_HOST: self.target})
        self.credential = Credential("AWS", "secret")
        self.executor = MirrorExecutor(RemoteRegistryClient(session=self.session))

    def test__execute__default_platform_of_index(self):
        _, children = self.source.add_index("library/python", tag="3.9")

        result = self.executor.execute(mirror_request("python:3.9"), None, self.credential)

        self.assertEqual(result.digest, children["linux/amd64"])
        self.assertEqual(result.image_reference, f"{TARGET_HOST}/demo:3.9")
        self.assertEqual(result.platforms, ["linux/amd64"])
        self.assertEqual(sha256(self.target.manifests["demo"]["3.9"][1]), children["linux/amd64"])

    def test__execute__explicit_platform_of_index(self):
        _, children = self.source.add_index("library/python", tag="3.9")

        result = self.executor.execute(
            mirror_request("python:3.9", "linux/arm64/v8"), None, self.credential
        )

        self.assertEqual(result.digest, children["linux/arm64/v8"])
        self.assertEqual(result.platforms, ["linux/arm64/v8"])

    def test__execute__all_platforms_of_index(self):
        index_digest, children = self.source.add_index(
            "library/python",
            tag="3.9",
            platforms=(("linux", "arm64", "v8"), ("linux", "amd64", ""), ("linux", "s390x", "")),
        )

        result = self.executor.execute(mirror_request("python:3.9", "all"), None, self.credential)

        self.assertEqual(result.digest, index_digest)
        self.assertEqual(result.platforms, ["linux/arm64/v8", "linux/amd64", "linux/s390x"])
        for digest in children.values():
            self.assertTrue(self.target.has_manifest("demo", digest))

    def test__execute__all_platforms_of_single_image(self):
        digest, _ = self.source.add_image("library/python", tag="3.9")

        result = self.executor.execute(mirror_request("python:3.9", "all"), None, self.credential)

        self.assertEqual(result.digest, digest)
        self.assertEqual(result.platforms, [])

    def test__execute__by_digest(self):
        digest, _ = self.source.add_image("library/python", tag="3.9")

        result = self.executor.execute(mirror_request(f"python@{digest}"), None, self.credential)

        self.assertEqual(result.image_reference, f"{TARGET_HOST}/demo@{digest}")
        self.assertTrue(self.target.has_manifest("demo", digest))

    def test__execute__digest_pinned_index_for_one_platform(self):
        index_digest, children = self.source.add_index("library/python", tag="3.9")

        result = self.executor.execute(
            mirror_request(f"python@{index_digest}"), None, self.credential
        )

        child_digest = children["linux/amd64"]
        self.assertEqual(result.digest, child_digest)
        self.assertEqual(result.image_reference, f"{TARGET_HOST}/demo@{child_digest}")
        self.assertEqual(result.platforms, ["linux/amd64"])
        self.assertEqual(sha256(self.target.manifests["demo"][child_digest][1]), child_digest)
        self.assertFalse(self.target.has_manifest("demo", index_digest))

    def test__execute__digest_pinned_index_for_all_platforms(self):
        index_digest, _ = self.source.add_index("library/python", tag="3.9")

        result = self.executor.execute(
            mirror_request(f"python@{index_digest}", "all"), None, self.credential
        )

        self.assertEqual(result.digest, index_digest)
        self.assertEqual(result.image_reference, f"{TARGET_HOST}/demo@{index_digest}")
        self.assertTrue(self.target.has_manifest("demo", index_digest))

    def test__execute__is_idempotent(self):
        self.source.add_index("library/python", tag="3.9")
        request = mirror_request("python:3.9", "all")

        first = self.executor.execute(request, None, self.credential)
        second = self.executor.execute(request, None, self.credential)

        self.assertEqual(first, second)

    def test__execute__platform_not_found(self):
        self.source.add_index("library/python", tag="3.9")

        with self.assertRaises(PlatformNotFound):
            self.executor.execute(mirror_request("python:3.9", "windows/amd64"), None, self.credential)
        self.assertEqual(self.target.manifests, {})

    def test__execute__missing_source(self):
        with self.assertRaises(SourceFetchFailed) as context:
            self.executor.execute(mirror_request("python:3.9"), None, self.credential)
        self.assertIn("docker.io/library/python:3.9", str(context.exception))

    def test__execute__push_failure(self):
        self.source.add_image("library/python", tag="3.9")

        with self.assertRaises(TargetPushFailed) as context:
            self.executor.execute(mirror_request("python:3.9"), None, Credential("AWS", "wrong"))
        self.assertIn(f"{TARGET_HOST}/demo:3.9", str(context.exception))

    def test__execute__cancellation_is_not_wrapped(self):
        client = mock.MagicMock()
        client.fetch_descriptor.side_effect = Cancelled("cancelled")

        with self.assertRaises(Cancelled):
            MirrorExecutor(client).execute(mirror_request("python:3.9"), None, self.credential)

    def test__execute__wraps_push_registry_error(self):
        client = mock.MagicMock()
        client.push_descriptor.side_effect = RegistryError("denied", status_code=403)

        with self.assertRaises(TargetPushFailed):
            MirrorExecutor(client).execute(mirror_request("python:3.9"), None, self.credential)
