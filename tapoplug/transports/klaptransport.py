"""Implementation of the seed based KLAP handshake used by current Tapo firmware.

The protocol works by doing a two stage handshake to obtain
an encryption key and session id cookie.

Authentication uses an auth_hash which is
sha256(sha1(username) + sha1(password))

handshake1: client sends a random 16 byte local_seed to the
device and receives a random 16 bytes remote_seed, followed
by sha256(local_seed + remote_seed + auth_hash). It also returns
the session cookie and its lifetime in the Set-Cookie header as
``TP_SESSIONID=<id>;TIMEOUT=<seconds>``. A server hash that does not
match our own calculation aborts the handshake.

handshake2: client sends sha256(remote_seed + local_seed + auth_hash) to
the device along with the session cookie. Device responds with
200 if successful.

encryption: local_seed, remote_seed and auth_hash are now used
for encryption. The last 4 bytes of the initialization vector
are used as a sequence number that increments every time the
client calls encrypt and this sequence number is sent as a
url parameter to the device along with the encrypted payload.

"""

from __future__ import annotations

import logging
import struct
import time
from typing import TYPE_CHECKING, Any, cast

from yarl import URL

from ..credentials import Credentials
from ..crypto import _sha1, _sha256, aes_cbc_decrypt, aes_cbc_encrypt, generate_seed
from ..exceptions import AuthenticationError, TapoException
from ..json import loads as json_loads
from ..session import Session, SessionState, parse_session_cookie
from .basetransport import HandshakeStrategy

if TYPE_CHECKING:
    from ..deviceconfig import DeviceConfig

_LOGGER = logging.getLogger(__name__)

PACK_SIGNED_LONG = struct.Struct(">l").pack

SIGNATURE_SIZE = 32
BLOCK_SIZE = 16
_INT32_MAX = 2**31 - 1
_INT32_MIN = -(2**31)


class SeedKlapHandshake(HandshakeStrategy):
    """Implementation of the KLAP handshake with sha256 seed hashes."""

    SET_COOKIE_HEADER = "Set-Cookie"

    def __init__(self, *, config: DeviceConfig) -> None:
        super().__init__(config=config)
        credentials = config.credentials or Credentials()
        self._auth_hash = self.generate_auth_hash(credentials)
        self._app_url = URL(f"http://{self._host}:{self._port}/app")
        self._request_url = self._app_url / "request"

        _LOGGER.debug("Created KLAP handshake for %s", self._host)

    @property
    def auth_hash(self) -> bytes:
        """The credential digest shared with the device."""
        return self._auth_hash

    async def perform_handshake1(self) -> tuple[bytes, bytes, str, int]:
        """Perform handshake1.

        Return the local and remote seeds with the session cookie and its
        lifetime in seconds.
        """
        local_seed = generate_seed()

        url = self._app_url / "handshake1"

        response_status, response_data = await self._http_client.post(
            url, data=local_seed
        )

        if _LOGGER.isEnabledFor(logging.DEBUG):
            _LOGGER.debug(
                "Handshake1 posted. Host is %s, Response status is %s, "
                + "Request was %s",
                self._host,
                response_status,
                local_seed.hex(),
            )

        if response_status != 200:
            raise TapoException(
                f"Device {self._host} responded with {response_status} to handshake1"
            )

        response_data = cast(bytes, response_data or b"")
        remote_seed = response_data[0:16]
        server_hash = response_data[16:]

        if len(remote_seed) != 16 or not server_hash:
            raise TapoException(
                f"Device {self._host} responded with unexpected klap response "
                + f"{response_data!r} to handshake1"
            )

        expected_hash = self.handshake1_seed_auth_hash(
            local_seed, remote_seed, self._auth_hash
        )
        if expected_hash != server_hash:
            msg = f"Server response doesn't match our challenge on ip {self._host}"
            _LOGGER.debug(msg)
            raise AuthenticationError(msg)

        _LOGGER.debug("handshake1 hashes match with expected credentials")

        cookie, timeout = parse_session_cookie(
            self._http_client.get_response_header(self.SET_COOKIE_HEADER)
        )
        return local_seed, remote_seed, cookie, timeout

    async def perform_handshake2(
        self, local_seed: bytes, remote_seed: bytes, cookie: str
    ) -> KlapEncryptionSession:
        """Perform handshake2."""
        url = self._app_url / "handshake2"

        payload = self.handshake2_seed_auth_hash(
            local_seed, remote_seed, self._auth_hash
        )

        response_status, _ = await self._http_client.post(
            url,
            data=payload,
            headers={"Cookie": cookie},
        )

        if _LOGGER.isEnabledFor(logging.DEBUG):
            _LOGGER.debug(
                "Handshake2 posted. Host is %s, Response status is %s, "
                + "Request was %s",
                self._host,
                response_status,
                payload.hex(),
            )

        if response_status != 200:
            raise TapoException(
                f"Device {self._host} responded with {response_status} to handshake2"
            )

        return KlapEncryptionSession(local_seed, remote_seed, self._auth_hash)

    async def perform_handshake(self) -> Session:
        """Perform handshake1 and handshake2."""
        _LOGGER.debug("Starting handshake with %s", self._host)

        local_seed, remote_seed, cookie, timeout = await self.perform_handshake1()
        expire_at = time.time() + timeout
        encryption_session = await self.perform_handshake2(
            local_seed, remote_seed, cookie
        )

        _LOGGER.debug("Handshake with %s complete", self._host)
        return Session(
            state=SessionState.AUTHENTICATED,
            encryption_session=encryption_session,
            cookie=cookie,
            expire_at=expire_at,
        )

    async def send(self, session: Session, request: str) -> dict[str, Any]:
        """Send the request."""
        encryption_session = cast(KlapEncryptionSession, session.encryption_session)
        payload, seq = encryption_session.encrypt(request.encode())

        headers = {"Cookie": session.cookie} if session.cookie else None
        response_status, response_data = await self._http_client.post(
            self._request_url,
            params={"seq": seq},
            data=payload,
            headers=headers,
        )

        if response_status != 200:
            _LOGGER.error(
                "Query failed after successful authentication. Host is %s, "
                + "Sequence is %s, Response status is %s",
                self._host,
                seq,
                response_status,
            )
            raise TapoException(
                f"Device {self._host} responded with {response_status} to "
                + f"request with seq {seq}"
            )

        _LOGGER.debug("Query posted. Host is %s, Sequence is %s", self._host, seq)
        try:
            decrypted_response = encryption_session.decrypt(cast(bytes, response_data))
            return json_loads(decrypted_response)
        except Exception as ex:
            raise TapoException(
                f"Unable to decrypt response from {self._host}, error: {ex}", ex
            ) from ex

    @staticmethod
    def generate_auth_hash(creds: Credentials) -> bytes:
        """Generate the sha256 auth hash for the supplied credentials."""
        un = creds.username
        pw = creds.password

        return _sha256(_sha1(un.encode()) + _sha1(pw.encode()))

    @staticmethod
    def handshake1_seed_auth_hash(
        local_seed: bytes, remote_seed: bytes, auth_hash: bytes
    ) -> bytes:
        """Return the hash the device proves its knowledge of auth_hash with."""
        return _sha256(local_seed + remote_seed + auth_hash)

    @staticmethod
    def handshake2_seed_auth_hash(
        local_seed: bytes, remote_seed: bytes, auth_hash: bytes
    ) -> bytes:
        """Return the hash we prove our knowledge of auth_hash with."""
        return _sha256(remote_seed + local_seed + auth_hash)


class KlapEncryptionSession:
    """Class to represent an encryption session and it's internal state.

    i.e. sequence number which the device expects to increment.
    """

    def __init__(self, local_seed: bytes, remote_seed: bytes, user_hash: bytes):
        self.local_seed = local_seed
        self.remote_seed = remote_seed
        self.user_hash = user_hash
        self._key = self._key_derive(local_seed, remote_seed, user_hash)
        (self._iv, self._seq) = self._iv_derive(local_seed, remote_seed, user_hash)
        self._sig = self._sig_derive(local_seed, remote_seed, user_hash)

    @property
    def key(self) -> bytes:
        """The 16 byte AES key."""
        return self._key

    @property
    def iv(self) -> bytes:
        """The 12 byte IV prefix, completed by the sequence number."""
        return self._iv

    @property
    def sig_key(self) -> bytes:
        """The 28 byte key that prefixes signed data."""
        return self._sig

    @property
    def seq(self) -> int:
        """The sequence number of the last encrypted request."""
        return self._seq

    def _key_derive(self, local_seed, remote_seed, user_hash):
        payload = b"lsk" + local_seed + remote_seed + user_hash
        return _sha256(payload)[:16]

    def _iv_derive(self, local_seed, remote_seed, user_hash):
        # iv is first 12 bytes of sha256, where the last 4 bytes form the
        # sequence number used in requests and is incremented on each request
        payload = b"iv" + local_seed + remote_seed + user_hash
        fulliv = _sha256(payload)
        seq = int.from_bytes(fulliv[-4:], "big", signed=True)
        return (fulliv[:12], seq)

    def _sig_derive(self, local_seed, remote_seed, user_hash):
        # used to create a hash with which to prefix each request
        payload = b"ldk" + local_seed + remote_seed + user_hash
        return _sha256(payload)[:28]

    def _iv_seq(self, seq: int) -> bytes:
        return self._iv + PACK_SIGNED_LONG(seq)

    def _next_seq(self) -> int:
        if self._seq >= _INT32_MAX:
            return _INT32_MIN
        return self._seq + 1

    def signature(self, seq: int, ciphertext: bytes) -> bytes:
        """Return the 32 byte signature sent in front of the ciphertext."""
        return _sha256(self._sig + PACK_SIGNED_LONG(seq) + ciphertext)

    def encrypt(self, msg: bytes | str) -> tuple[bytes, int]:
        """Encrypt the data and increment the sequence number."""
        self._seq = self._next_seq()

        if isinstance(msg, str):
            msg = msg.encode("utf-8")

        # The device expects the payload filled with spaces to the block size
        msg += b" " * (BLOCK_SIZE - len(msg) % BLOCK_SIZE)
        ciphertext = aes_cbc_encrypt(self._key, self._iv_seq(self._seq), msg)
        return (self.signature(self._seq, ciphertext) + ciphertext, self._seq)

    def decrypt(self, msg: bytes) -> str:
        """Decrypt the reply to the last encrypted request.

        The signature prefix is skipped without being verified.
        """
        plaintext = aes_cbc_decrypt(
            self._key, self._iv_seq(self._seq), msg[SIGNATURE_SIZE:]
        )
        return plaintext.decode()
