"""Implementation of the legacy RSA/AES handshake.

Firmware released before 2023 exchanges a static AES key and IV encrypted
with a client supplied RSA public key, then logs in with a securePassthrough
wrapped ``login_device`` request. Every later command is wrapped the same
way and authorised by the login token in the url.

Based on the work of https://github.com/petretiandrea/plugp100
under compatible GNU GPL3 license.
"""

from __future__ import annotations

import base64
import logging
import time
from typing import TYPE_CHECKING, Any, cast

from yarl import URL

from ..credentials import Credentials
from ..crypto import KeyPair, _sha1_hex, aes_cbc_decrypt, aes_cbc_encrypt
from ..exceptions import (
    TAPO_AUTHENTICATION_ERRORS,
    AuthenticationError,
    DeviceError,
    TapoErrorCode,
    TapoException,
)
from ..json import dumps as json_dumps
from ..json import loads as json_loads
from ..session import Session, SessionState, parse_session_cookie
from .basetransport import HandshakeStrategy

if TYPE_CHECKING:
    from ..deviceconfig import DeviceConfig

_LOGGER = logging.getLogger(__name__)


class LegacyRSAHandshake(HandshakeStrategy):
    """Implementation of the RSA key exchange and securePassthrough login."""

    SET_COOKIE_HEADER = "Set-Cookie"
    COMMON_HEADERS = {
        "Content-Type": "application/json",
        "requestByApp": "true",
        "Accept": "application/json",
    }

    def __init__(
        self,
        *,
        config: DeviceConfig,
    ) -> None:
        super().__init__(config=config)

        credentials = config.credentials or Credentials()
        self._login_params = self._get_login_params(credentials)

        self._key_pair: KeyPair | None = None
        if config.aes_keys:
            aes_keys = config.aes_keys
            self._key_pair = KeyPair.create_from_der_keys(
                aes_keys["private"], aes_keys["public"]
            )
        self._app_url = URL(f"http://{self._host}:{self._port}/app")

        _LOGGER.debug("Created legacy RSA handshake for %s", self._host)

    @property
    def key_pair(self) -> KeyPair | None:
        """The RSA key pair, created on the first handshake."""
        return self._key_pair

    def _get_login_params(self, credentials: Credentials) -> dict[str, str]:
        un, pw = self.hash_credentials(credentials)
        return {"username": un, "password": pw}

    @staticmethod
    def hash_credentials(credentials: Credentials) -> tuple[str, str]:
        """Hash the credentials."""
        un = base64.b64encode(_sha1_hex(credentials.username.encode()).encode()).decode()
        pw = base64.b64encode(credentials.password.encode()).decode()
        return un, pw

    def _handle_response_error_code(self, resp_dict: dict, msg: str) -> None:
        error_code_raw = resp_dict.get("error_code", 0)
        try:
            error_code = TapoErrorCode.from_int(error_code_raw)
        except (TypeError, ValueError):
            _LOGGER.warning(
                "Device %s received unknown error code: %s", self._host, error_code_raw
            )
            error_code = TapoErrorCode.INTERNAL_UNKNOWN_ERROR
        if error_code is TapoErrorCode.SUCCESS:
            return
        msg = f"{msg}: {self._host}: {error_code.name}({error_code_raw})"
        if error_code in TAPO_AUTHENTICATION_ERRORS:
            raise AuthenticationError(msg, error_code=error_code)
        raise DeviceError(msg, error_code=error_code)

    def _capture_cookie(self, session: Session) -> None:
        """Store the session id of the first exchange that carries one."""
        if session.cookie:
            return
        header = self._http_client.get_response_header(self.SET_COOKIE_HEADER)
        if not header:
            return
        try:
            session.cookie, timeout = parse_session_cookie(header)
            session.expire_at = time.time() + timeout
        except AuthenticationError:
            # Older firmware sends the bare session id without a lifetime
            session.cookie = header.split(";", 1)[0]

    async def send_secure_passthrough(
        self, session: Session, request: str
    ) -> dict[str, Any]:
        """Send encrypted message as passthrough."""
        url = self._app_url
        if session.token:
            url = url.with_query({"token": session.token})

        encryption_session = cast(AesEncryptionSession, session.encryption_session)
        encrypted_payload = encryption_session.encrypt(request.encode())
        passthrough_request = {
            "method": "securePassthrough",
            "params": {"request": encrypted_payload.decode()},
        }
        headers = dict(self.COMMON_HEADERS)
        if session.cookie:
            headers["Cookie"] = session.cookie

        status_code, resp_dict = await self._http_client.post(
            url,
            json=passthrough_request,
            headers=headers,
        )

        if status_code != 200:
            raise TapoException(
                f"{self._host} responded with an unexpected "
                + f"status code {status_code} to passthrough"
            )

        if TYPE_CHECKING:
            resp_dict = cast(dict[str, Any], resp_dict)

        self._capture_cookie(session)
        self._handle_response_error_code(
            resp_dict, "Error sending secure_passthrough message"
        )

        raw_response: str = resp_dict["result"]["response"]

        try:
            response = encryption_session.decrypt(raw_response.encode())
            return json_loads(response)
        except Exception as ex:
            raise TapoException(
                f"Unable to decrypt response from {self._host}, "
                + f"error: {ex}, response: {raw_response}",
                ex,
            ) from ex

    async def perform_login(self, session: Session) -> None:
        """Login to the device and store the token on the session."""
        login_request = {
            "method": "login_device",
            "params": self._login_params,
            "request_time_milis": round(time.time() * 1000),
        }
        resp_dict = await self.send_secure_passthrough(
            session, json_dumps(login_request)
        )
        self._handle_response_error_code(resp_dict, "Error logging in")
        try:
            session.token = resp_dict["result"]["token"]
        except (KeyError, TypeError) as ex:
            raise AuthenticationError(
                f"Device {self._host} did not return a login token"
            ) from ex
        _LOGGER.debug("%s: logged in with provided credentials", self._host)

    def _get_key_pair(self) -> KeyPair:
        if not self._key_pair:
            _LOGGER.debug("Generating keypair")
            self._key_pair = KeyPair.create_key_pair()
        return self._key_pair

    async def perform_handshake(self) -> Session:
        """Perform the key exchange and the login."""
        _LOGGER.debug("Will perform handshaking...")

        key_pair = self._get_key_pair()
        request_body = {
            "method": "handshake",
            "params": {"key": key_pair.get_public_pem()},
        }
        status_code, resp_dict = await self._http_client.post(
            self._app_url,
            json=request_body,
            headers=self.COMMON_HEADERS,
        )

        _LOGGER.debug("Device responded with: %s", resp_dict)

        if status_code != 200:
            raise TapoException(
                f"{self._host} responded with an unexpected "
                + f"status code {status_code} to handshake"
            )

        if TYPE_CHECKING:
            resp_dict = cast(dict[str, Any], resp_dict)

        self._handle_response_error_code(resp_dict, "Unable to complete handshake")

        try:
            encryption_session = AesEncryptionSession.create_from_keypair(
                resp_dict["result"]["key"], key_pair
            )
        except Exception as ex:
            raise AuthenticationError(
                f"Unable to decrypt the handshake key from {self._host}: {ex}"
            ) from ex

        session = Session(
            state=SessionState.HANDSHAKING, encryption_session=encryption_session
        )
        self._capture_cookie(session)
        await self.perform_login(session)
        session.state = SessionState.AUTHENTICATED

        _LOGGER.debug("Handshake with %s complete", self._host)
        return session

    async def send(self, session: Session, request: str) -> dict[str, Any]:
        """Send the request."""
        return await self.send_secure_passthrough(session, request)


class AesEncryptionSession:
    """Class for an AES encryption session with a static key and iv."""

    @staticmethod
    def create_from_keypair(
        handshake_key: str, keypair: KeyPair
    ) -> AesEncryptionSession:
        """Create the encryption session."""
        handshake_key_bytes: bytes = base64.b64decode(handshake_key.encode())

        key_and_iv = keypair.decrypt_handshake_key(handshake_key_bytes)
        if len(key_and_iv) != 32:
            raise ValueError(f"Unexpected key length {len(key_and_iv)}")

        return AesEncryptionSession(key_and_iv[:16], key_and_iv[16:])

    def __init__(self, key: bytes, iv: bytes) -> None:
        self.key = key
        self.iv = iv

    def encrypt(self, data: bytes) -> bytes:
        """Encrypt the message."""
        return base64.b64encode(aes_cbc_encrypt(self.key, self.iv, data))

    def decrypt(self, data: str | bytes) -> str:
        """Decrypt the message."""
        return aes_cbc_decrypt(self.key, self.iv, base64.b64decode(data)).decode()
