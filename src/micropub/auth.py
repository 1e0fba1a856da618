"""
IndieAuth token verification.

Micropub requests carry a bearer token issued by the site owner's token
endpoint. The token is checked by asking that endpoint about it and making
sure it was issued to the configured identity (``me``) with a scope that
allows creating posts.

References:
    - IndieAuth token verification: https://indieauth.spec.indieweb.org/#access-token-verification
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional
from urllib.parse import parse_qs, urlparse

import requests

from indieweb.webmention import USER_AGENT, DEFAULT_TIMEOUT


logger = logging.getLogger(__name__)

CREATE_SCOPES = {"create", "post"}


class TokenVerificationError(Exception):
    """Raised when a token is missing, invalid or lacks the needed scope.

    Attributes:
        error: Micropub error code (unauthorized, forbidden, insufficient_scope)
        status_code: HTTP status to answer with
    """

    def __init__(self, error: str, status_code: int, description: str):
        super().__init__(description)
        self.error = error
        self.status_code = status_code
        self.description = description


def _normalize_identity(url: Optional[str]) -> str:
    if not url:
        return ""
    parsed = urlparse(url.strip())
    path = parsed.path or "/"
    if not path.endswith("/"):
        path += "/"
    return f"{parsed.scheme.lower()}://{parsed.netloc.lower()}{path}"


@dataclass
class TokenVerifier:
    """Verifies bearer tokens against an IndieAuth token endpoint.

    Attributes:
        identity: The site owner's IndieAuth identity URL
        token_endpoint: Token endpoint that issued the tokens
        timeout: Request timeout in seconds
    """
    identity: str
    token_endpoint: str
    timeout: float = DEFAULT_TIMEOUT

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "TokenVerifier":
        indieauth = config.get("site", {}).get("indieauth", {})
        return cls(
            identity=indieauth["identity"],
            token_endpoint=indieauth["token_endpoint"],
            timeout=config.get("webmention", {}).get("timeout", DEFAULT_TIMEOUT),
        )

    def _fetch_token_info(self, token: str) -> Dict[str, Any]:
        try:
            response = requests.get(
                self.token_endpoint,
                headers={
                    "Authorization": f"Bearer {token}",
                    "Accept": "application/json",
                    "User-Agent": USER_AGENT,
                },
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            logger.error(f"Token endpoint request failed: endpoint={self.token_endpoint}, error={e}")
            raise TokenVerificationError("forbidden", 403, "Couldn't verify access token") from e

        if not response.ok:
            logger.warning(f"Token endpoint rejected token: status_code={response.status_code}")
            raise TokenVerificationError("forbidden", 403, "Access token is not valid")

        # Older endpoints answer form-encoded regardless of Accept
        content_type = response.headers.get("Content-Type", "")
        if "application/x-www-form-urlencoded" in content_type:
            return {k: v[0] for k, v in parse_qs(response.text).items()}

        try:
            data = response.json()
        except ValueError as e:
            logger.error(f"Token endpoint returned invalid JSON: endpoint={self.token_endpoint}")
            raise TokenVerificationError("forbidden", 403, "Couldn't verify access token") from e
        if not isinstance(data, dict):
            raise TokenVerificationError("forbidden", 403, "Couldn't verify access token")
        return data

    def verify(self, token: Optional[str], required_scopes: Optional[set] = None) -> Dict[str, Any]:
        """Verify a bearer token.

        Args:
            token: The bearer token from the request
            required_scopes: Token must have at least one of these scopes;
                None skips the scope check

        Returns:
            Token information from the token endpoint

        Raises:
            TokenVerificationError: If the token is missing, invalid, issued
                to another identity, or lacks scope
        """
        if not token:
            raise TokenVerificationError("unauthorized", 401, "Missing access token")

        info = self._fetch_token_info(token)

        me = info.get("me")
        if _normalize_identity(me) != _normalize_identity(self.identity):
            logger.warning(f"Token issued to a different identity: me={me}")
            raise TokenVerificationError("forbidden", 403, "Access token was issued to a different identity")

        if required_scopes:
            scopes = set(str(info.get("scope", "")).split())
            if not scopes & required_scopes:
                logger.warning(f"Token lacks required scope: scope={info.get('scope')!r}")
                raise TokenVerificationError(
                    "insufficient_scope", 403,
                    f"Access token needs one of these scopes: {' '.join(sorted(required_scopes))}",
                )

        logger.debug(f"Verified access token for {me} (client_id={info.get('client_id')})")
        return info
