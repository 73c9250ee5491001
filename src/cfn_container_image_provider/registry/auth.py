"""Registry authentication.

Registries answer an unauthenticated request with `401` and a
`WWW-Authenticate` challenge. A `Basic` challenge is answered with the
credential itself; a `Bearer` challenge by exchanging the credential (or
nothing, for anonymous pulls) for a token at the challenge realm, scoped to
the repository and actions being accessed.
"""

__all__ = [
    "Challenge",
    "authorization_header",
    "parse_challenge",
    "pull_scope",
    "push_scope",
]

import base64
import re
from dataclasses import dataclass, field
from typing import Dict, Optional

import requests

from cfn_container_image_provider.exceptions import RegistryError
from cfn_container_image_provider.registry.model import Credential

CHALLENGE_PARAM_PATTERN = re.compile(r'(\w+)="([^"]*)"')


@dataclass(frozen=True)
class Challenge:
    scheme: str
    params: Dict[str, str] = field(default_factory=dict)

    @property
    def realm(self) -> Optional[str]:
        return self.params.get("realm")

    @property
    def service(self) -> Optional[str]:
        return self.params.get("service")


def parse_challenge(header: str) -> Challenge:
    """Parse a `WWW-Authenticate` header value.

    Example:
        `Bearer realm="https://auth.docker.io/token",service="registry.docker.io"`
    """
    scheme, _, params = header.strip().partition(" ")
    return Challenge(scheme=scheme.lower(), params=dict(CHALLENGE_PARAM_PATTERN.findall(params)))


def pull_scope(repository: str) -> str:
    return f"repository:{repository}:pull"


def push_scope(repository: str) -> str:
    return f"repository:{repository}:pull,push"


def basic_token(credential: Credential) -> str:
    return base64.b64encode(f"{credential.username}:{credential.password}".encode()).decode()


def authorization_header(
    session: requests.Session,
    challenge: Challenge,
    scope: str,
    credential: Optional[Credential],
    timeout: float,
) -> str:
    """Answer a challenge with the value of an `Authorization` header.

    Args:
        session (requests.Session): Session used for the token request.
        challenge (Challenge): The challenge returned by the registry.
        scope (str): Scope of the token, e.g. `repository:library/python:pull`.
        credential (Optional[Credential]): Credential, None for anonymous access.
        timeout (float): Timeout of the token request in seconds.

    Raises:
        RegistryError: If the challenge cannot be answered or the token request fails.
    """
    if challenge.scheme == "basic":
        if credential is None:
            raise RegistryError("registry requires basic authentication but no credential was given")
        return f"Basic {basic_token(credential)}"

    if challenge.scheme != "bearer" or not challenge.realm:
        raise RegistryError(f"unsupported authentication challenge: {challenge}")

    params = {"scope": scope}
    if challenge.service:
        params["service"] = challenge.service
    auth = (credential.username, credential.password) if credential else None
    response = session.get(challenge.realm, params=params, auth=auth, timeout=timeout)
    if response.status_code != 200:
        raise RegistryError(
            f"token request to {challenge.realm} failed with {response.status_code}: "
            f"{response.text[:300]}",
            status_code=response.status_code,
        )
    try:
        body = response.json()
    except ValueError as e:
        raise RegistryError(f"token response from {challenge.realm} is not valid JSON: {e}") from e
    token = (body.get("token") or body.get("access_token")) if isinstance(body, dict) else None
    if not token:
        raise RegistryError(f"token response from {challenge.realm} contains no token")
    return f"Bearer {token}"
