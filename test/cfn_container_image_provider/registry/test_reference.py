from test.base import does_not_raise

import pytest
from pytest import mark

from cfn_container_image_provider.exceptions import InvalidReferenceFormat, MissingProperty
from cfn_container_image_provider.registry.reference import ImageReference, ReferenceForm

DIGEST = f"sha256:{'a' * 64}"


@mark.parametrize(
    "value, registry, repository, tag, digest, form",
    [
        pytest.param(
            "python", "docker.io", "library/python", "latest", "", ReferenceForm.NAME_ONLY,
            id="official image gets default registry, library prefix and tag",
        ),
        pytest.param(
            "python:3.9", "docker.io", "library/python", "3.9", "", ReferenceForm.NAME_TAG,
            id="tag",
        ),
        pytest.param(
            f"python@{DIGEST}", "docker.io", "library/python", "", DIGEST, ReferenceForm.NAME_DIGEST,
            id="digest only leaves tag empty",
        ),
        pytest.param(
            f"python:3.9@{DIGEST}", "docker.io", "library/python", "3.9", DIGEST,
            ReferenceForm.NAME_TAG_DIGEST,
            id="tag and digest are both kept",
        ),
        pytest.param(
            "bitnami/redis:7", "docker.io", "bitnami/redis", "7", "", ReferenceForm.NAME_TAG,
            id="user repository on docker hub",
        ),
        pytest.param(
            "index.docker.io/library/python", "docker.io", "library/python", "latest", "",
            ReferenceForm.NAME_ONLY,
            id="legacy docker hub host",
        ),
        pytest.param(
            "ghcr.io/owner/app/cli:v1.2.3", "ghcr.io", "owner/app/cli", "v1.2.3", "",
            ReferenceForm.NAME_TAG,
            id="nested repository on other registry",
        ),
        pytest.param(
            "localhost:5000/app", "localhost:5000", "app", "latest", "", ReferenceForm.NAME_ONLY,
            id="registry with port",
        ),
        pytest.param(
            "localhost/app:1", "localhost", "app", "1", "", ReferenceForm.NAME_TAG,
            id="localhost registry",
        ),
        pytest.param(
            "public.ecr.aws/docker/library/python:3.12-slim", "public.ecr.aws",
            "docker/library/python", "3.12-slim", "", ReferenceForm.NAME_TAG,
            id="public ecr",
        ),
        pytest.param(
            "my_org/my-app__x", "docker.io", "my_org/my-app__x", "latest", "",
            ReferenceForm.NAME_ONLY,
            id="component separators",
        ),
    ],
)
def test__ImageReference__parse__valid(value, registry, repository, tag, digest, form):
    reference = ImageReference.parse(value)
    assert reference.registry == registry
    assert reference.repository == repository
    assert reference.tag == tag
    assert reference.digest == digest
    assert reference.form == form


@mark.parametrize(
    "value, expected_position, raise_expectation",
    [
        pytest.param(
            "https://docker.io/library/python:3.9", 0, pytest.raises(InvalidReferenceFormat),
            id="url scheme",
        ),
        pytest.param("Python", 0, pytest.raises(InvalidReferenceFormat), id="uppercase name"),
        pytest.param("", 0, pytest.raises(InvalidReferenceFormat), id="empty"),
        pytest.param("python:", 7, pytest.raises(InvalidReferenceFormat), id="empty tag"),
        pytest.param("python:-1", 7, pytest.raises(InvalidReferenceFormat), id="invalid tag"),
        pytest.param("python@sha256:abc", 7, pytest.raises(InvalidReferenceFormat), id="short digest"),
        pytest.param(
            f"python@sha256:{'A' * 64}", 7, pytest.raises(InvalidReferenceFormat),
            id="uppercase sha256",
        ),
        pytest.param("library//python", 8, pytest.raises(InvalidReferenceFormat), id="empty component"),
        pytest.param("python-", 0, pytest.raises(InvalidReferenceFormat), id="trailing separator"),
        pytest.param(
            "a/" * 127 + "abc", 255, pytest.raises(InvalidReferenceFormat), id="name too long"
        ),
        pytest.param("python:3.9", None, does_not_raise(), id="valid"),
    ],
)
def test__ImageReference__parse__invalid(value, expected_position, raise_expectation):
    with raise_expectation as e:
        ImageReference.parse(value)
    if expected_position is not None:
        assert str(e.value).startswith(f"{value}: invalid reference format")
        assert e.value.reference == value
        assert e.value.position == expected_position


@mark.parametrize("value", [None, 42, ["python"], {"name": "python"}])
def test__ImageReference__parse__rejects_non_string(value):
    with pytest.raises(MissingProperty) as e:
        ImageReference.parse(value)
    assert str(e.value) == "ImageReference is missing or not a string"


def test__ImageReference__str__renders_canonical_reference():
    assert str(ImageReference.parse("python")) == "docker.io/library/python:latest"
    assert (
        str(ImageReference.parse(f"python:3.9@{DIGEST}"))
        == f"docker.io/library/python:3.9@{DIGEST}"
    )


def test__ImageReference__by_digest__drops_tag():
    reference = ImageReference.parse("ghcr.io/owner/app:1").by_digest(DIGEST)
    assert reference.tag == ""
    assert reference.identifier == DIGEST
    assert reference.form == ReferenceForm.NAME_DIGEST
    assert str(reference) == f"ghcr.io/owner/app@{DIGEST}"


def test__ImageReference__identifier__prefers_digest():
    assert ImageReference.parse(f"python:3.9@{DIGEST}").identifier == DIGEST
    assert ImageReference.parse("python:3.9").identifier == "3.9"
