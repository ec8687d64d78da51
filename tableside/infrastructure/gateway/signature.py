import base64
import hashlib
import hmac


class SignatureVerifier:
    """
    Gateway callbacks are signed as
    base64(HMAC-SHA256(secret, "<gateway_order_ref>|<gateway_payment_ref>")).
    """

    def __init__(self, secret: str):
        if not secret:
            raise ValueError("Signature secret must not be empty.")
        self._secret = secret.encode("utf-8")

    def sign(self, gateway_order_ref: str, gateway_payment_ref: str) -> str:
        data = f"{gateway_order_ref}|{gateway_payment_ref}".encode("utf-8")
        digest = hmac.new(self._secret, data, hashlib.sha256).digest()
        return base64.b64encode(digest).decode("ascii")

    def verify(
        self,
        gateway_order_ref: str,
        gateway_payment_ref: str,
        signature: str,
    ) -> bool:
        if not signature:
            return False
        expected = self.sign(gateway_order_ref, gateway_payment_ref)
        return hmac.compare_digest(expected.encode("ascii"), signature.encode("utf-8"))
