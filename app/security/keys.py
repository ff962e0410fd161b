import os
from pathlib import Path

from cryptography.exceptions import InvalidSignature, UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa
from loguru import logger

from app.core.exceptions.security import ConfigurationError, KeyInitializationError

RSA_KEY_SIZE = 2048
RSA_PUBLIC_EXPONENT = 65537
SELF_TEST_MESSAGE = b"key-provider-self-test"


class KeyProvider:
    """
    Owns the RSA keypair used to sign every token issued by the service.

    The pair lives as two PEM files in ``keys_dir``: the private key in PKCS#8
    and the public key in SubjectPublicKeyInfo (X.509) encoding. ``initialize()``
    must run once at startup; until then both key accessors return None.

    Example:
        ```python
        provider = KeyProvider(settings.keys_dir)
        provider.initialize()
        signature = provider.sign(b"payload")
        assert provider.verify(b"payload", signature)
        ```
    """

    def __init__(
        self,
        keys_dir: Path,
        private_key_filename: str = "jwt_key.pem",
        public_key_filename: str = "jwt_key.pub.pem",
    ):
        self.keys_dir = Path(keys_dir)
        self.private_key_path = self.keys_dir / private_key_filename
        self.public_key_path = self.keys_dir / public_key_filename

        self._private_key: rsa.RSAPrivateKey | None = None
        self._public_key: rsa.RSAPublicKey | None = None

    @property
    def private_key(self) -> rsa.RSAPrivateKey | None:
        return self._private_key

    @property
    def public_key(self) -> rsa.RSAPublicKey | None:
        return self._public_key

    @property
    def is_initialized(self) -> bool:
        return self._private_key is not None and self._public_key is not None

    @property
    def private_key_pem(self) -> str:
        """PKCS#8 PEM text of the private key."""
        if self._private_key is None:
            raise KeyInitializationError("Key provider has not been initialized")

        return self._private_key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        ).decode()

    @property
    def public_key_pem(self) -> str:
        """SubjectPublicKeyInfo PEM text of the public key."""
        if self._public_key is None:
            raise KeyInitializationError("Key provider has not been initialized")

        return self._public_key.public_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PublicFormat.SubjectPublicKeyInfo,
        ).decode()

    def initialize(self) -> None:
        """
        Load the keypair from disk, or generate and persist a new one.

        Keys that are missing, unreadable or fail the sign/verify self-test are
        replaced with a freshly generated pair.

        Raises:
            ConfigurationError: If the keys directory cannot be created
            KeyInitializationError: If generation, persistence or the self-test
                of a new pair fails
        """
        self._ensure_keys_dir()

        if self._load_existing_keys():
            logger.info(f"Signing keys loaded from {self.keys_dir}")
            return

        self._generate_keys()

        if not self.self_test():
            self._private_key = None
            self._public_key = None
            raise KeyInitializationError("Generated keypair failed the sign/verify self-test")

        logger.info(f"New signing keypair generated in {self.keys_dir}")

    def sign(self, message: bytes) -> bytes:
        """
        Sign ``message`` with RSASSA-PKCS1-v1_5 over SHA-256.

        Raises:
            KeyInitializationError: If called before ``initialize()``
        """
        if self._private_key is None:
            raise KeyInitializationError("Key provider has not been initialized")

        return self._private_key.sign(message, padding.PKCS1v15(), hashes.SHA256())

    def verify(self, message: bytes, signature: bytes) -> bool:
        """Check a signature produced by ``sign`` against the public key."""
        if self._public_key is None:
            raise KeyInitializationError("Key provider has not been initialized")

        try:
            self._public_key.verify(signature, message, padding.PKCS1v15(), hashes.SHA256())
        except InvalidSignature:
            return False

        return True

    def self_test(self) -> bool:
        """Sign a fixed message with the private key and verify it with the public key."""
        if not self.is_initialized:
            return False

        try:
            return self.verify(SELF_TEST_MESSAGE, self.sign(SELF_TEST_MESSAGE))
        except (ValueError, TypeError, UnsupportedAlgorithm) as e:
            logger.warning(f"Signing key self-test raised: {e}")
            return False

    def _ensure_keys_dir(self) -> None:
        try:
            self.keys_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ConfigurationError(
                f"Cannot create keys directory '{self.keys_dir}': {e.strerror or e}", e
            )

        if not os.access(self.keys_dir, os.W_OK | os.X_OK):
            raise ConfigurationError(f"Keys directory '{self.keys_dir}' is not writable")

    def _load_existing_keys(self) -> bool:
        if not self.private_key_path.is_file() or not self.public_key_path.is_file():
            logger.info(f"No signing keys found in {self.keys_dir}")
            return False

        try:
            private_key = serialization.load_pem_private_key(
                self.private_key_path.read_bytes(), password=None
            )
            public_key = serialization.load_pem_public_key(self.public_key_path.read_bytes())
        except (OSError, ValueError, TypeError, UnsupportedAlgorithm) as e:
            logger.warning(f"Stored signing keys are unreadable, regenerating: {e}")
            return False

        if not isinstance(private_key, rsa.RSAPrivateKey) or not isinstance(
            public_key, rsa.RSAPublicKey
        ):
            logger.warning("Stored signing keys are not RSA keys, regenerating")
            return False

        self._private_key = private_key
        self._public_key = public_key

        if not self.self_test():
            logger.warning("Stored signing keys do not form a matching pair, regenerating")
            self._private_key = None
            self._public_key = None
            return False

        return True

    def _generate_keys(self) -> None:
        try:
            private_key = rsa.generate_private_key(
                public_exponent=RSA_PUBLIC_EXPONENT,
                key_size=RSA_KEY_SIZE,
            )
            self._private_key = private_key
            self._public_key = private_key.public_key()

            self.private_key_path.write_text(self.private_key_pem)
            os.chmod(self.private_key_path, 0o600)
            self.public_key_path.write_text(self.public_key_pem)
        except (OSError, ValueError, UnsupportedAlgorithm) as e:
            self._private_key = None
            self._public_key = None
            raise KeyInitializationError(f"Failed to generate signing keys in '{self.keys_dir}'", e)
