import httpx
from loguru import logger

from app.core.config import settings


class CaptchaVerifier:
    """
    Server-side verification of captcha responses.

    Works with any provider exposing the reCAPTCHA ``siteverify`` contract
    (reCAPTCHA, hCaptcha, Turnstile). Without a configured secret, or when the
    provider cannot be reached, every response is rejected.
    """

    def __init__(
        self,
        secret: str | None = None,
        verify_url: str | None = None,
        timeout: float | None = None,
    ):
        self.secret = secret if secret is not None else settings.captcha_secret
        self.verify_url = verify_url or settings.captcha_verify_url
        self.timeout = timeout or settings.captcha_timeout_seconds

    @property
    def is_configured(self) -> bool:
        return bool(self.secret)

    async def verify(self, response_token: str | None, remote_ip: str | None = None) -> bool:
        """
        Ask the provider whether ``response_token`` is a solved challenge.

        Args:
            response_token: Token produced by the client-side widget
            remote_ip: Client IP forwarded to the provider

        Returns:
            bool: True only on an explicit ``success: true`` from the provider
        """
        if not response_token:
            return False

        if not self.is_configured:
            logger.warning("Captcha verification requested but no captcha secret is configured")
            return False

        payload = {"secret": self.secret, "response": response_token}
        if remote_ip:
            payload["remoteip"] = remote_ip

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(self.verify_url, data=payload)
                response.raise_for_status()
                result = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Captcha verification failed: {e}")
            return False

        if not isinstance(result, dict):
            logger.error(f"Captcha provider returned an unexpected body: {type(result).__name__}")
            return False

        if result.get("success") is not True:
            logger.info(f"Captcha rejected: {result.get('error-codes', [])}")
            return False

        return True
