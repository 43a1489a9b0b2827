import hashlib
import hmac
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Mapping
from urllib.parse import urlencode

from app.core.config import settings
from app.core.errors import PaymentProviderError, SignatureError, ValidationError
from app.models.booking import Booking
from app.services.payment_service import PaymentFailed, PaymentOutcome, PaymentSucceeded

VNPAY_VERSION = "2.1.0"
VNPAY_TZ = timezone(timedelta(hours=7))
HASH_FIELDS_EXCLUDED = ("vnp_SecureHash", "vnp_SecureHashType")


@dataclass
class VNPayConfig:
    tmn_code: str
    hash_secret: str
    payment_url: str
    return_url: str
    expire_minutes: int = 15


def _hmac_sha512_hex(secret: str, msg: str) -> str:
    return hmac.new(secret.encode("utf-8"), msg.encode("utf-8"), hashlib.sha512).hexdigest()


def _query(params: Mapping[str, str]) -> str:
    # VNPay signs the sorted, url-encoded query string with empty values dropped
    return urlencode(sorted((k, str(v)) for k, v in params.items() if v not in (None, "")))


class VNPayClient:
    def __init__(self, cfg: VNPayConfig):
        self.cfg = cfg

    @classmethod
    def from_settings(cls) -> "VNPayClient":
        return cls(VNPayConfig(
            tmn_code=settings.VNPAY_TMN_CODE,
            hash_secret=settings.VNPAY_HASH_SECRET,
            payment_url=settings.VNPAY_PAYMENT_URL,
            return_url=settings.VNPAY_RETURN_URL or f"{settings.CLIENT_BASE_URL}/payment/vnpay/return",
        ))

    def sign(self, params: Mapping[str, str]) -> str:
        return _hmac_sha512_hex(self.cfg.hash_secret, _query(params))

    def build_payment_url(self, booking: Booking, client_ip: str, now: datetime | None = None) -> str:
        if not self.cfg.tmn_code or not self.cfg.hash_secret:
            raise PaymentProviderError("vnpay is not configured")
        if (booking.currency or "").upper() != "VND":
            raise ValidationError("VNPay only accepts VND bookings")
        now = (now or datetime.now(timezone.utc)).astimezone(VNPAY_TZ)
        params = {
            "vnp_Version": VNPAY_VERSION,
            "vnp_Command": "pay",
            "vnp_TmnCode": self.cfg.tmn_code,
            "vnp_Amount": str(int(Decimal(booking.total_amount) * 100)),
            "vnp_CurrCode": "VND",
            "vnp_TxnRef": booking.booking_number,
            "vnp_OrderInfo": f"Payment for booking {booking.booking_number}",
            "vnp_OrderType": "other",
            "vnp_Locale": "vn",
            "vnp_ReturnUrl": self.cfg.return_url,
            "vnp_IpAddr": client_ip or "127.0.0.1",
            "vnp_CreateDate": now.strftime("%Y%m%d%H%M%S"),
            "vnp_ExpireDate": (now + timedelta(minutes=self.cfg.expire_minutes)).strftime("%Y%m%d%H%M%S"),
        }
        return f"{self.cfg.payment_url}?{_query(params)}&vnp_SecureHash={self.sign(params)}"

    def verify_and_parse_callback(self, params: Mapping[str, str]) -> tuple[str, PaymentOutcome]:
        """Check vnp_SecureHash and return (booking number, outcome)."""
        received = params.get("vnp_SecureHash")
        if not self.cfg.hash_secret or not received:
            raise SignatureError("missing secure hash")
        data = {k: v for k, v in params.items() if k.startswith("vnp_") and k not in HASH_FIELDS_EXCLUDED}
        if not hmac.compare_digest(self.sign(data).lower(), received.lower()):
            raise SignatureError("secure hash mismatch")

        booking_number = data.get("vnp_TxnRef") or ""
        txn = data.get("vnp_TransactionNo") or ""
        try:
            amount = Decimal(data.get("vnp_Amount") or "0") / 100
        except ArithmeticError as e:
            raise ValidationError("invalid vnp_Amount") from e

        code = data.get("vnp_ResponseCode")
        if code == "00" and data.get("vnp_TransactionStatus", "00") == "00":
            return booking_number, PaymentSucceeded(transaction_id=txn, amount=amount, method="vnpay")
        return booking_number, PaymentFailed(reason=f"VNPay response code {code}", transaction_id=txn or None)
