from decimal import Decimal

from pydantic import BaseModel


class StripeIntentRequest(BaseModel):
    bookingId: str


class StripeIntentOut(BaseModel):
    clientSecret: str
    paymentIntentId: str
    amount: Decimal
    currency: str


class StripeConfirmRequest(BaseModel):
    bookingId: str
    paymentIntentId: str


class VNPayRequest(BaseModel):
    bookingId: str


class VNPayOut(BaseModel):
    paymentUrl: str
